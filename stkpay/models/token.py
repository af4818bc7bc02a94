from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class AccessToken:
    """Daraja bearer token. expires_at of None means single-use."""
    value: str
    expires_at: Optional[datetime] = None

    @property
    def cacheable(self) -> bool:
        return self.expires_at is not None

    def is_valid(self, now: datetime) -> bool:
        return self.expires_at is not None and now < self.expires_at
