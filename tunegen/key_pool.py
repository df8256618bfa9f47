"""Key pool management."""

import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from tunegen.config import Config
from tunegen.models import Credential

Clock = Callable[[], float]


def _isoformat(timestamp: Optional[float]) -> Optional[str]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


class KeyPool:
    """Round-robin pool of API keys with a rolling per-key request window."""

    def __init__(
        self,
        api_keys: List[str],
        max_requests: int = 20,
        window_seconds: float = 3600,
        clock: Clock = time.time,
    ):
        if not api_keys:
            raise ValueError("KeyPool needs at least one API key")

        self.window_seconds = window_seconds
        self._clock = clock
        self._cursor = 0
        self._lock: asyncio.Lock = asyncio.Lock()

        now = clock()
        self.credentials: List[Credential] = [
            Credential(
                id=f"key_{index}",
                key=api_key,
                max_requests=max_requests,
                reset_at=now + window_seconds,
            )
            for index, api_key in enumerate(api_keys, start=1)
        ]

    @classmethod
    def from_config(cls, config: Config, clock: Clock = time.time) -> "KeyPool":
        return cls(
            config.api_keys,
            max_requests=config.max_requests_per_window,
            window_seconds=config.reset_window_seconds,
            clock=clock,
        )

    @property
    def size(self) -> int:
        return len(self.credentials)

    @property
    def cursor(self) -> int:
        return self._cursor

    async def select_credential(
        self, exclude: Optional[Credential] = None
    ) -> Credential:
        """Pick the key for the next outbound request.

        Keys whose window has elapsed are reset first. The scan then starts at
        the rotation cursor and returns the first key still under its limit,
        moving the cursor past it. When every key is exhausted the one that
        resets soonest is returned so the caller can fail fast.
        """
        async with self._lock:
            now = self._clock()
            self._reset_expired(now)

            count = len(self.credentials)
            for offset in range(count):
                index = (self._cursor + offset) % count
                credential = self.credentials[index]
                if credential is exclude:
                    continue
                if credential.is_available:
                    self._cursor = (index + 1) % count
                    return credential

            candidates = [c for c in self.credentials if c is not exclude]
            if not candidates:
                return self.credentials[0]
            # min() keeps the first of equal deadlines
            return min(candidates, key=lambda item: item.reset_at)

    async def record_usage(self, credential: Credential) -> None:
        async with self._lock:
            credential.usage += 1
            credential.last_used = self._clock()

    def _reset_expired(self, now: float) -> None:
        for credential in self.credentials:
            if now >= credential.reset_at:
                credential.usage = 0
                credential.reset_at = now + self.window_seconds

    def snapshot(self) -> List[Dict[str, object]]:
        return [
            {
                "index": index,
                "id": credential.id,
                "key_prefix": credential.key_prefix(),
                "usage_count": credential.usage,
                "max_usage": credential.max_requests,
                "reset_at": _isoformat(credential.reset_at),
                "is_available": credential.is_available,
                "last_used_at": _isoformat(credential.last_used),
            }
            for index, credential in enumerate(self.credentials)
        ]

    def get_status(self) -> Dict[str, object]:
        available_keys = sum(1 for c in self.credentials if c.is_available)
        return {
            "total_keys": len(self.credentials),
            "available_keys": available_keys,
            "exhausted_keys": len(self.credentials) - available_keys,
            "total_available_generations": sum(
                c.remaining for c in self.credentials
            ),
            "keys": self.snapshot(),
        }
