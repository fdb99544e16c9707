from __future__ import annotations

import logging
import time
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, AsyncGenerator, List, Optional

import httpx

from .config import RelayConfig
from .events import (
    DONE_EVENT,
    error_event,
    extract_error,
    extract_text,
    parse_data_line,
    text_event,
    upstream_error_message,
)
from .logging_utils import JsonlLogger
from .metrics import MetricsAggregator, StreamSummary
from .reassembler import LineReassembler

logger = logging.getLogger(__name__)


@dataclass
class _StreamState:
    model: str
    started_at: float
    outcome: str = "disconnected"
    status_code: Optional[int] = None
    chunks: int = 0
    lines: int = 0
    text_events: int = 0
    error_events: int = 0
    first_text_at: Optional[float] = None

    def summary(self) -> StreamSummary:
        now = time.time()
        ttft = (
            (self.first_text_at - self.started_at) * 1000
            if self.first_text_at is not None
            else None
        )
        return StreamSummary(
            ts=now,
            model=self.model,
            outcome=self.outcome,
            status_code=self.status_code,
            chunks=self.chunks,
            lines=self.lines,
            text_events=self.text_events,
            error_events=self.error_events,
            ttft_ms=ttft,
            duration_ms=(now - self.started_at) * 1000,
        )


class GeminiRelay:
    """Relay one client request to ``streamGenerateContent`` and re-frame it.

    Each call to :meth:`stream` owns its upstream response and its own
    :class:`LineReassembler`; only the pooled ``httpx.AsyncClient`` is shared.
    """

    def __init__(
        self,
        cfg: RelayConfig,
        metrics: MetricsAggregator,
        stream_log: JsonlLogger,
        client: httpx.AsyncClient | None = None,
    ):
        self.cfg = cfg
        self.metrics = metrics
        self.stream_log = stream_log
        self.client = client or httpx.AsyncClient(timeout=cfg.upstream_timeout_s)

    async def aclose(self) -> None:
        await self.client.aclose()

    def resolve_model(self, model_type: Any) -> str:
        models = self.cfg.models
        if isinstance(model_type, str) and model_type in models:
            return models[model_type]
        if model_type:
            logger.debug(
                "[relay] Unknown modelType %r; using '%s'",
                model_type,
                self.cfg.default_model,
            )
        return models[self.cfg.default_model]

    def build_url(self, model_name: str) -> str:
        return (
            f"{self.cfg.api_base_url}/{self.cfg.api_version}"
            f"/models/{model_name}:streamGenerateContent"
        )

    def _params(self) -> dict:
        params = {"alt": "sse"}
        if self.cfg.api_key:
            params["key"] = self.cfg.api_key
        return params

    async def stream(
        self, model_type: Any = None, contents: Any = None
    ) -> AsyncGenerator[bytes, None]:
        """Yield client SSE frames; ``[DONE]`` is last unless the stream aborted."""
        model_name = self.resolve_model(model_type)
        state = _StreamState(model=model_name, started_at=time.time())
        body = {"contents": contents if contents is not None else []}
        try:
            async with aclosing(self._upstream_frames(model_name, body, state)) as frames:
                async for frame in frames:
                    yield frame
        except Exception as exc:  # noqa: BLE001
            state.outcome = "aborted"
            state.error_events += 1
            logger.exception("[relay] Stream for %s aborted", model_name)
            detail = str(exc)
            name = type(exc).__name__
            yield error_event(f"{name}: {detail}" if detail else name)
        else:
            yield DONE_EVENT
        finally:
            self._record(state)

    async def _upstream_frames(
        self, model_name: str, body: dict, state: _StreamState
    ) -> AsyncGenerator[bytes, None]:
        url = self.build_url(model_name)
        logger.info("[relay] POST %s", url)
        async with self.client.stream(
            "POST",
            url,
            params=self._params(),
            json=body,
            headers={"Accept": "text/event-stream"},
        ) as resp:
            state.status_code = resp.status_code
            if not 200 <= resp.status_code < 300:
                raw = await resp.aread()
                message = upstream_error_message(raw.decode("utf-8", errors="replace"))
                logger.warning(
                    "[relay] Upstream rejected %s with HTTP %s: %s",
                    model_name,
                    resp.status_code,
                    message,
                )
                state.outcome = "rejected"
                state.error_events += 1
                yield error_event(message)
                return

            reassembler = LineReassembler()
            async for chunk in resp.aiter_bytes():
                state.chunks += 1
                for line in reassembler.feed(chunk):
                    for frame in self._interpret(line, state):
                        yield frame
            # upstream may close without a trailing newline
            tail = reassembler.flush()
            if tail is not None:
                for frame in self._interpret(tail, state):
                    yield frame
            state.outcome = "completed"

    def _interpret(self, line: str, state: _StreamState) -> List[bytes]:
        state.lines += 1
        event = parse_data_line(line)
        if event is None:
            return []
        frames = []
        text = extract_text(event)
        if text:
            if state.first_text_at is None:
                state.first_text_at = time.time()
            state.text_events += 1
            frames.append(text_event(text))
        message = extract_error(event)
        if message is not None:
            state.error_events += 1
            frames.append(error_event(message))
        return frames

    def _record(self, state: _StreamState) -> None:
        summary = state.summary()
        self.metrics.add(summary)
        self.stream_log.log(summary.to_record())
        logger.info(
            "[relay] %s stream %s: %d text / %d error events in %.0f ms",
            summary.model,
            summary.outcome,
            summary.text_events,
            summary.error_events,
            summary.duration_ms,
        )
