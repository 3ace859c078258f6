"""Publish crawl progress via Redis.

Progress is stored as a Redis hash (``nsr:progress:{job_id}``) and announced
on the ``nsr:events`` pub/sub channel for real-time consumers.  Redis being
unavailable never stops a crawl; failures are logged and ignored.
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

import redis
import structlog

logger = structlog.get_logger(__name__)

CHANNEL = "nsr:events"
KEY_TPL = "nsr:progress:{job_id}"


@dataclass
class CrawlerProgress:
    """Per-job crawl counters."""

    job_id: str
    started_at: float = field(default_factory=time.time)
    queued: int = 0
    fetched: int = 0
    failed: int = 0
    records: int = 0
    dropped: int = 0
    last_url: Optional[str] = None
    done: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_hash(self) -> Dict[str, Any]:
        """Flatten to values Redis accepts in a hash (no ``None``/``bool``)."""
        out: Dict[str, Any] = {}
        for key, value in self.to_dict().items():
            if value is None:
                value = ""
            elif isinstance(value, bool):
                value = int(value)
            out[key] = value
        return out


class Reporter:
    """Store and broadcast :class:`CrawlerProgress` snapshots."""

    def __init__(self, client: redis.Redis | None = None, *, url: str | None = None) -> None:
        if client is None:
            if not url:
                raise ValueError("either a Redis client or a Redis URL is required")
            client = redis.from_url(url, socket_connect_timeout=1)
        self.r = client

    def update(self, p: CrawlerProgress) -> None:
        try:
            self.r.hset(KEY_TPL.format(job_id=p.job_id), mapping=p.to_hash())
            self.r.publish(CHANNEL, json.dumps(p.to_dict(), ensure_ascii=False))
        except redis.exceptions.RedisError as exc:
            logger.warning("progress_update_failed", job_id=p.job_id, error=str(exc))

    def get_all(self) -> Dict[str, Dict[str, Any]]:
        """Map every known job key to its last stored snapshot."""
        res: Dict[str, Dict[str, Any]] = {}
        try:
            for key in self.r.scan_iter(match=KEY_TPL.format(job_id="*")):
                name = key.decode() if isinstance(key, bytes) else key
                res[name] = {
                    (k.decode() if isinstance(k, bytes) else k): (v.decode() if isinstance(v, bytes) else v)
                    for k, v in self.r.hgetall(key).items()
                }
        except redis.exceptions.RedisError as exc:
            logger.warning("progress_read_failed", error=str(exc))
            return {}
        return res
