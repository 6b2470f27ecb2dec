from __future__ import annotations

from typing import Optional

import redis

from .settings import APPROVAL_LOCK_SECONDS, REDIS_URL


def connect(url: Optional[str] = REDIS_URL) -> Optional[redis.Redis]:
    if not url:
        return None
    return redis.Redis.from_url(url, decode_responses=True)


def approval_lock_key(approval_id: str) -> str:
    return f"stageview:approval_lock:{approval_id}"


class ApprovalLock:
    """Per-approval SET NX lock; serializes resolve/cancel across processes."""

    def __init__(self, client: Optional[redis.Redis], owner: str, ttl_s: int = APPROVAL_LOCK_SECONDS):
        self.client = client
        self.owner = owner
        self.ttl_s = ttl_s

    def acquire(self, approval_id: str) -> bool:
        if self.client is None:
            return True
        return bool(self.client.set(approval_lock_key(approval_id), self.owner, nx=True, ex=self.ttl_s))

    def release(self, approval_id: str) -> None:
        if self.client is None:
            return
        key = approval_lock_key(approval_id)
        if self.client.get(key) == self.owner:
            self.client.delete(key)
