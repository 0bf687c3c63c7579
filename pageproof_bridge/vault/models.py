"""
Secret Models
=============
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class SecretState:
    """The provider's single cached secret."""
    cached_value: Optional[str] = None
    name: Optional[str] = None
    fetched_at: float = 0.0
    retry_count: int = 0
    source: Optional[str] = None  # "store" or "fallback"

    def is_fresh(self, name: str, now: float, ttl: float) -> bool:
        return (
            self.cached_value is not None
            and self.name == name
            and now - self.fetched_at <= ttl
        )
