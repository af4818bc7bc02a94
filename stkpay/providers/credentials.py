"""
Daraja credential store.

Built once from the Flask config at startup and never mutated afterwards.
"""

from dataclasses import dataclass
from typing import Any, Mapping

from stkpay.errors import ConfigurationError

# config key -> Credentials attribute
REQUIRED_SETTINGS = {
    'MPESA_BASE_URL':        'base_url',
    'MPESA_CONSUMER_KEY':    'consumer_key',
    'MPESA_CONSUMER_SECRET': 'consumer_secret',
    'MPESA_SHORTCODE':       'shortcode',
    'MPESA_PASSKEY':         'passkey',
    'MPESA_CALLBACK_URL':    'callback_url',
}


@dataclass(frozen=True)
class Credentials:
    consumer_key: str
    consumer_secret: str
    shortcode: str
    passkey: str
    callback_url: str
    base_url: str

    def __repr__(self):
        # keep secrets out of logs and tracebacks
        return f"Credentials(shortcode={self.shortcode!r}, base_url={self.base_url!r})"

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'Credentials':
        """
        Load credentials from a config mapping

        Raises:
            ConfigurationError: listing every required key that is absent or blank
        """
        values = {}
        missing = []
        for key, attr in REQUIRED_SETTINGS.items():
            value = config.get(key)
            value = str(value).strip() if value is not None else ''
            if not value:
                missing.append(key)
            values[attr] = value

        if missing:
            raise ConfigurationError(missing)

        values['base_url'] = values['base_url'].rstrip('/')
        return cls(**values)
