"""Configuration module for GridLog."""

import os
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field

# --- minimal .env loader (stdlib only) ---
def _load_dotenv():
    p = Path(".env")
    if not p.exists():
        return
    try:
        text = p.read_text(encoding="utf-8")
    except OSError:
        # env loading is best-effort
        return
    for line in text.splitlines():
        s = line.strip()
        if not s or s.startswith("#") or "=" not in s:
            continue
        k, v = s.split("=", 1)
        k = k.strip()
        v = v.strip()
        # keep existing OS env if already set
        if k and (k not in os.environ):
            os.environ[k] = v

_load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "on", "true", "yes", "enabled")


class Settings(BaseModel):
    """Application settings."""

    db_path: str = Field(default="gridlog.db", description="SQLite database file")
    udp_addr: str = Field(default="127.0.0.1", description="Address the telemetry source sends to")
    udp_port: int = Field(default=20777, description="Port the telemetry source sends to")
    flush_dedupe: bool = Field(
        default=True,
        description="Collapse re-delivered laps to one record per (driver, lap) on flush"
    )
    log_level: str = Field(default="INFO")

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables."""
        return cls(
            db_path=os.getenv("GL_DB_PATH", "gridlog.db"),
            udp_addr=os.getenv("GL_UDP_ADDR", "127.0.0.1"),
            udp_port=int(os.getenv("GL_UDP_PORT", "20777")),
            flush_dedupe=_env_flag("GL_FLUSH_DEDUPE", "1"),
            log_level=os.getenv("GL_LOG_LEVEL", "INFO").upper(),
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()


# ERS store capacity in Joules
ERS_MAX_LOAD = 4000000.0

# Per-lap race-condition tags, in legend display order
STATUS_SAFETY_CAR = "safetyCar"
STATUS_VIRTUAL_SAFETY_CAR = "virtualSafetyCar"
STATUS_YELLOW_FLAG = "yellowFlag"
STATUS_RAIN = "rain"
STATUS_ORDER = [STATUS_SAFETY_CAR, STATUS_VIRTUAL_SAFETY_CAR, STATUS_YELLOW_FLAG, STATUS_RAIN]

# Session type the final classification marks an event completed for
RACE_SESSION_TYPE = 10

GL_CORS_ORIGINS = os.getenv("GL_CORS_ORIGINS", "")  # e.g. "http://127.0.0.1:5173" or "*"
