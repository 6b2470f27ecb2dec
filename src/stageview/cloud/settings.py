from __future__ import annotations
import os

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./stageview.db")
REDIS_URL = os.environ.get("REDIS_URL")  # unset -> no cross-process approval lock
APPROVAL_LOCK_SECONDS = int(os.environ.get("APPROVAL_LOCK_SECONDS", "30"))
LOG_MAX_CHARS = int(os.environ["LOG_MAX_CHARS"]) if os.environ.get("LOG_MAX_CHARS") else None
DEBUG = os.environ.get("STAGEVIEW_DEBUG", "") not in ("", "0", "false")
