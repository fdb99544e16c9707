from __future__ import annotations

from fastapi import HTTPException


class RelayError(HTTPException):
    def __init__(
        self, status_code: int, err_type: str, message: str, hint: str | None = None
    ):
        payload = {"error": {"type": err_type, "code": status_code, "message": message}}
        if hint:
            payload["error"]["hint"] = hint
        super().__init__(status_code=status_code, detail=payload)


def err_invalid_body(hint: str | None = None) -> RelayError:
    return RelayError(400, "invalid_request", "Invalid request body", hint)


def err_metrics_disabled() -> RelayError:
    return RelayError(
        404, "disabled", "Metrics disabled", "Set GEMINI_RELAY_ENABLE_METRICS=1"
    )
