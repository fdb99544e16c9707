from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

DEFAULT_MODELS: Dict[str, str] = {
    "fast": "gemini-2.5-flash",
    "thinking": "gemini-2.5-pro",
}


@dataclass
class RelayConfig:
    host: str = "127.0.0.1"
    port: int = 3001
    api_key: Optional[str] = None
    api_base_url: str = "https://generativelanguage.googleapis.com"
    api_version: str = "v1beta"
    models: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_MODELS))
    default_model: str = "fast"
    # None = wait on the upstream indefinitely
    upstream_timeout_s: Optional[float] = None
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    enable_metrics: bool = False
    log_dir: str = "logs"
    log_level: str = "INFO"
    log_path: str = "logs/gemini_relay.jsonl"
    max_log_bytes: int = 25_000_000
    config_file_path: Optional[str] = None

    @classmethod
    def load(cls) -> "RelayConfig":
        from .config_loader import load_relay_config

        return load_relay_config()

    def masked(self) -> dict:
        """Return a plain dict view safe for display (credential hidden)."""
        from dataclasses import asdict

        data = asdict(self)
        if data.get("api_key"):
            data["api_key"] = "***"
        return data
