"""Generation API key pool with advisory soft-exhaustion markers.

Keys are loaded once per process from up to four numbered slots. The pool
is immutable afterwards except for exhaustion markers, which only reorder
future attempts: a key that recently hit a quota is tried last, never
dropped, because quotas recover.
"""

import logging
import time
from typing import Dict, List, Optional, Sequence

from coach_service.core.errors import NoCredentialsError

logger = logging.getLogger(__name__)

MAX_SLOTS = 4

# Sentinel values shipped in example env files
PLACEHOLDER_KEYS = frozenset({
    "your_api_key_here",
    "your-api-key-here",
    "your_gemini_api_key_here",
    "your_api_key",
    "changeme",
})


def is_usable_key(value: Optional[str]) -> bool:
    """A slot is usable when it is non-empty and not a placeholder."""
    if value is None:
        return False
    stripped = value.strip()
    return bool(stripped) and stripped.lower() not in PLACEHOLDER_KEYS


class KeyPool:
    """Ordered credentials (1..4) shared by dispatch calls within a process."""

    def __init__(self, keys: Sequence[str]):
        """
        Initialize key pool.

        Args:
            keys: Credentials in priority order (unusable entries are rejected)

        Raises:
            ValueError: If more than MAX_SLOTS keys are given
        """
        usable = [k.strip() for k in keys if is_usable_key(k)]
        usable = list(dict.fromkeys(usable))
        if len(usable) > MAX_SLOTS:
            raise ValueError(f"At most {MAX_SLOTS} keys supported, got {len(usable)}")
        self._keys: tuple = tuple(usable)
        self._exhausted_at: Dict[str, float] = {}

    @classmethod
    def load(cls, *sources: Sequence[Optional[str]]) -> "KeyPool":
        """
        Load keys by scanning numbered slots across sources.

        For each slot 1..4 the first usable value wins, taking sources in
        the order given (explicit, environment, persisted).

        Args:
            sources: Slot-ordered value sequences, highest priority first

        Returns:
            KeyPool with the accepted keys
        """
        keys: List[str] = []
        for slot in range(MAX_SLOTS):
            for source in sources:
                value = source[slot] if slot < len(source) else None
                if is_usable_key(value):
                    keys.append(value.strip())
                    break
        pool = cls(keys)
        logger.info(f"Loaded {len(pool)} generation key(s)")
        return pool

    def __len__(self) -> int:
        return len(self._keys)

    def __bool__(self) -> bool:
        return bool(self._keys)

    def ordered(self) -> List[str]:
        """
        Keys in attempt order.

        Healthy keys keep their slot order; soft-exhausted keys follow,
        least recently exhausted first.

        Raises:
            NoCredentialsError: If the pool is empty
        """
        if not self._keys:
            raise NoCredentialsError("No generation API key configured")
        marks = dict(self._exhausted_at)  # snapshot
        healthy = [k for k in self._keys if k not in marks]
        exhausted = sorted((k for k in self._keys if k in marks), key=lambda k: marks[k])
        return healthy + exhausted

    def slot_of(self, key: str) -> int:
        """1-based slot number, for logging without leaking the key."""
        return self._keys.index(key) + 1

    def mark_exhausted(self, key: str) -> None:
        if key in self._keys:
            self._exhausted_at[key] = time.monotonic()
            logger.warning(f"Generation key slot {self.slot_of(key)} looks exhausted")

    def mark_healthy(self, key: str) -> None:
        self._exhausted_at.pop(key, None)

    def is_exhausted(self, key: str) -> bool:
        return key in self._exhausted_at
