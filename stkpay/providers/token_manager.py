"""
Daraja OAuth token manager.

    GET /oauth/v1/generate?grant_type=client_credentials   (Basic auth)

One instance per process, injected wherever a bearer token is needed.
Readers holding a still-valid cached token never take the lock; renewal is
serialised so at most one token exchange is in flight.
"""

import base64
import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from stkpay.errors import AuthenticationError, TransientNetworkError
from stkpay.models import AccessToken
from stkpay.providers.credentials import Credentials
from stkpay.utils.clock import utcnow

logger = logging.getLogger(__name__)


def basic_auth_header(consumer_key: str, consumer_secret: str) -> str:
    raw = f"{consumer_key}:{consumer_secret}"
    return "Basic " + base64.b64encode(raw.encode("utf-8")).decode("utf-8")


class TokenManager:
    """Acquires, caches and renews Daraja bearer tokens."""

    _EP_AUTH = "/oauth/v1/generate"

    # Cached tokens are retired this many seconds before the gateway expires them
    SAFETY_MARGIN = 60
    DEFAULT_TTL = 3300

    def __init__(
        self,
        credentials: Credentials,
        timeout: float = 15,
        retries: int = 3,
        default_ttl: int = DEFAULT_TTL,
        session: Optional[requests.Session] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.credentials = credentials
        self.timeout = timeout
        self.default_ttl = default_ttl
        self._clock = clock

        self._token: Optional[AccessToken] = None
        self._lock = threading.Lock()

        self._session = session or self._create_session(retries)

    @staticmethod
    def _create_session(retries: int) -> requests.Session:
        """Session that retries the idempotent token GET on connect errors and 5xx"""
        session = requests.Session()
        retry_strategy = Retry(
            total=retries,
            backoff_factor=0.5,
            status_forcelist=[500, 502, 503, 504],
            allowed_methods=["GET"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    @property
    def cached_token(self) -> Optional[AccessToken]:
        return self._token

    def acquire_token(self) -> AccessToken:
        """
        Return a usable bearer token, exchanging credentials if needed

        Raises:
            AuthenticationError: credentials rejected or unusable response
            TransientNetworkError: timeout, connection failure or gateway 5xx
        """
        token = self._token
        if token is not None and token.is_valid(self._clock()):
            return token

        with self._lock:
            # another thread may have renewed while we waited
            token = self._token
            if token is not None and token.is_valid(self._clock()):
                return token

            token = self._request_token()
            self._token = token if token.cacheable else None
            return token

    def invalidate(self, token: Optional[AccessToken] = None) -> None:
        """
        Drop the cached token.

        When token is given, the cache is only cleared if it still holds that
        token, so a renewal done by another thread is not thrown away.
        """
        with self._lock:
            if token is None or self._token == token:
                self._token = None

    def _request_token(self) -> AccessToken:
        url = f"{self.credentials.base_url}{self._EP_AUTH}"
        headers = {
            "Authorization": basic_auth_header(
                self.credentials.consumer_key, self.credentials.consumer_secret
            ),
        }

        try:
            resp = self._session.get(
                url,
                params={"grant_type": "client_credentials"},
                headers=headers,
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise TransientNetworkError(f"Token exchange timed out – {exc}") from exc
        except requests.RequestException as exc:
            raise TransientNetworkError(f"Token exchange failed – {exc}") from exc

        if resp.status_code >= 500:
            raise TransientNetworkError(
                f"Token exchange HTTP {resp.status_code}",
                upstream_status=resp.status_code,
                upstream_body=resp.text,
            )

        if resp.status_code != 200:
            logger.error("Daraja token exchange rejected: HTTP %s %s", resp.status_code, resp.text[:300])
            raise AuthenticationError(
                f"Token exchange rejected (HTTP {resp.status_code}); check consumer key and secret",
                upstream_status=resp.status_code,
                upstream_body=resp.text,
            )

        try:
            data: Dict[str, Any] = resp.json()
        except ValueError:
            data = {}

        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            logger.error("Daraja token exchange returned an unusable body: %s", resp.text[:300])
            raise AuthenticationError(
                "Token exchange response has no access_token",
                upstream_status=resp.status_code,
                upstream_body=resp.text,
            )

        token = AccessToken(value=str(access_token), expires_at=self._expiry_for(data.get("expires_in")))
        logger.debug(
            "Daraja access token refreshed (expires at %s)",
            token.expires_at.isoformat() if token.expires_at else "single-use",
        )
        return token

    def _expiry_for(self, expires_in: Any) -> Optional[datetime]:
        now = self._clock()
        try:
            lifetime = int(expires_in)
        except (TypeError, ValueError):
            return now + timedelta(seconds=self.default_ttl)

        usable = lifetime - self.SAFETY_MARGIN
        if usable <= 0:
            return None
        return now + timedelta(seconds=usable)
