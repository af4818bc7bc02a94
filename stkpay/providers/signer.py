"""
STK Push request signing.

Password  = Base64(BusinessShortCode + Passkey + Timestamp)
Timestamp = YYYYMMDDHHmmss, taken when the request is built
"""

import base64
from datetime import datetime
from typing import Callable, Optional, Tuple

from stkpay.providers.credentials import Credentials

TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


def generate_timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def sign(shortcode: str, passkey: str, timestamp: str) -> str:
    raw = f"{shortcode}{passkey}{timestamp}"
    return base64.b64encode(raw.encode("utf-8")).decode("utf-8")


class RequestSigner:
    """Stamps and signs each submission with the current wall-clock time."""

    def __init__(self, credentials: Credentials, clock: Callable[[], datetime] = datetime.now):
        self.credentials = credentials
        self._clock = clock

    def stamp(self) -> Tuple[str, str]:
        """Return a fresh (timestamp, password) pair"""
        timestamp = generate_timestamp(self._clock())
        password = sign(self.credentials.shortcode, self.credentials.passkey, timestamp)
        return timestamp, password
