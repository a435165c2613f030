"""Uvicorn launcher for the document service, tuned from the environment.

PDF rendering runs in worker threads, so a modest concurrency limit keeps a
burst of webhook-triggered generations from exhausting memory.
"""

import os
from typing import Any, Mapping, Optional

import uvicorn

APP_PATH = "visa_docs.main:app"


def _env_int(env: Mapping[str, str], name: str, default: int, minimum: int = 1) -> int:
    raw = env.get(name, str(default)).strip()
    try:
        return max(minimum, int(raw))
    except ValueError:
        return default


def _env_optional_int(env: Mapping[str, str], name: str) -> Optional[int]:
    raw = env.get(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def uvicorn_options(env: Optional[Mapping[str, str]] = None) -> dict[str, Any]:
    env = os.environ if env is None else env
    return {
        "host": env.get("HOST", "0.0.0.0"),
        "port": _env_int(env, "PORT", 8000),
        "workers": _env_int(env, "WEB_CONCURRENCY", 1),
        "timeout_keep_alive": _env_int(env, "UVICORN_TIMEOUT_KEEP_ALIVE", 5),
        "limit_concurrency": _env_optional_int(env, "UVICORN_LIMIT_CONCURRENCY"),
        "log_level": env.get("UVICORN_LOG_LEVEL", "info").strip() or "info",
    }


if __name__ == "__main__":
    uvicorn.run(APP_PATH, **uvicorn_options())
