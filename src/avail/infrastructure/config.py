"""Settings read from the environment (entry points load .env first)."""

import os
from collections.abc import Mapping
from dataclasses import dataclass

AUTH_MODE_FIREBASE = "firebase"
AUTH_MODE_HEADER = "header"


def _int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    auth_mode: str = AUTH_MODE_FIREBASE
    firebase_project_id: str | None = None
    query_chunk_size: int = 10
    batch_limit: int = 500
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        auth_mode = env.get("AVAIL_AUTH_MODE", AUTH_MODE_FIREBASE).strip().lower()
        if auth_mode not in (AUTH_MODE_FIREBASE, AUTH_MODE_HEADER):
            raise ValueError(
                f"AVAIL_AUTH_MODE must be '{AUTH_MODE_FIREBASE}' or '{AUTH_MODE_HEADER}'"
            )
        return cls(
            auth_mode=auth_mode,
            firebase_project_id=env.get("FIREBASE_PROJECT_ID", "").strip() or None,
            query_chunk_size=_int(env, "AVAIL_QUERY_CHUNK_SIZE", 10),
            batch_limit=_int(env, "AVAIL_BATCH_LIMIT", 500),
            log_level=env.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        )
