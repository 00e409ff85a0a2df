from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


def _dir_override(value: Optional[str]) -> Optional[str]:
    trimmed = (value or "").strip()
    if not trimmed or "\0" in trimmed:
        return None
    return str(Path(trimmed).expanduser().resolve())


def _optional(value: Optional[str]) -> Optional[str]:
    trimmed = (value or "").strip()
    return trimmed or None


@dataclass
class Settings:
    config_dir: str
    openclaw_dir: str
    outbox_dir: str
    log_dir: str
    log_level: str
    base_url: str
    api_key: str | None
    user_id: str | None
    request_timeout: float
    sync_interval_seconds: int

    @staticmethod
    def from_env(env: Mapping[str, str] | None = None) -> "Settings":
        source = os.environ if env is None else env
        home = Path(os.path.expanduser("~"))
        config_dir = _dir_override(source.get("ORGX_OPENCLAW_PLUGIN_CONFIG_DIR")) or str(
            home / ".config" / "useorgx" / "openclaw-plugin"
        )
        openclaw_dir = _dir_override(source.get("OPENCLAW_HOME")) or str(home / ".openclaw")
        outbox_dir = _dir_override(source.get("ORGX_OUTBOX_DIR")) or str(
            Path(openclaw_dir) / "orgx-outbox"
        )
        log_dir = _dir_override(source.get("ORGX_LOG_DIR")) or str(Path(config_dir) / "logs")
        return Settings(
            config_dir=config_dir,
            openclaw_dir=openclaw_dir,
            outbox_dir=outbox_dir,
            log_dir=log_dir,
            log_level=source.get("ORGX_LOG_LEVEL", "info"),
            base_url=(source.get("ORGX_BASE_URL") or "https://www.useorgx.com").rstrip("/"),
            api_key=_optional(source.get("ORGX_API_KEY")),
            user_id=_optional(source.get("ORGX_USER_ID")),
            request_timeout=float(source.get("ORGX_REQUEST_TIMEOUT", "15")),
            sync_interval_seconds=int(source.get("ORGX_SYNC_INTERVAL_SECONDS", "300")),
        )
