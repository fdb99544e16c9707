from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RelayRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    # Kept permissive: unknown or non-string keys fall back to the default model.
    model_type: Any = Field(None, alias="modelType")
    contents: Any = None  # passed to Gemini verbatim
