from flask import current_app

from stkpay.providers.credentials import Credentials
from stkpay.providers.mpesa_provider import MPesaProvider
from stkpay.providers.token_manager import TokenManager
from stkpay.services.correlation_service import CorrelationSweeper, CorrelationTracker
from stkpay.services.payment_service import PaymentInitiator
from stkpay.services.webhook_service import WebhookService


class RedisClient:
    def __init__(self):
        self.client = None

    def init_app(self, app):
        import redis
        self.client = redis.Redis.from_url(app.config['REDIS_URL'], decode_responses=True)

    def get(self, key):
        return self.client.get(key)

    def set(self, key, value, ex=None, nx=False):
        return self.client.set(key, value, ex=ex, nx=nx)

    def delete(self, key):
        return self.client.delete(key)

    def exists(self, key):
        return self.client.exists(key)

    def ping(self):
        return self.client.ping()


class StkPushState:
    """Per-application gateway components, wired once at startup"""

    def __init__(self, credentials, token_manager, provider, tracker, initiator, webhooks):
        self.credentials = credentials
        self.token_manager = token_manager
        self.provider = provider
        self.tracker = tracker
        self.initiator = initiator
        self.webhooks = webhooks
        self.sweeper = None


class StkPush:
    """
    Flask extension owning the STK Push lifecycle components.

    Each app gets its own credentials, token cache and correlation map in
    app.extensions['stkpay']; nothing is shared between apps.
    """

    def __init__(self, app=None):
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        config = app.config

        # Raises ConfigurationError: the process must not start half-configured
        credentials = Credentials.from_config(config)

        token_manager = TokenManager(
            credentials,
            timeout=config['MPESA_TOKEN_TIMEOUT'],
            retries=config['MPESA_TOKEN_RETRIES'],
            default_ttl=config['MPESA_TOKEN_DEFAULT_TTL'],
        )
        provider = MPesaProvider(
            credentials,
            token_manager,
            timeout=config['MPESA_REQUEST_TIMEOUT'],
        )
        tracker = CorrelationTracker(
            expiry_seconds=config['CORRELATION_EXPIRY_SECONDS'],
            retention_seconds=config['CORRELATION_RETENTION_SECONDS'],
        )

        state = StkPushState(
            credentials=credentials,
            token_manager=token_manager,
            provider=provider,
            tracker=tracker,
            initiator=PaymentInitiator(provider, tracker, country_code=config['MPESA_PHONE_COUNTRY_CODE']),
            webhooks=WebhookService(provider, tracker),
        )

        interval = config['CORRELATION_SWEEP_INTERVAL']
        if interval and not app.testing:
            state.sweeper = CorrelationSweeper(tracker, interval)
            state.sweeper.start()

        app.extensions['stkpay'] = state
        return state

    @property
    def state(self) -> StkPushState:
        return current_app.extensions['stkpay']

    @property
    def initiator(self):
        return self.state.initiator

    @property
    def webhooks(self):
        return self.state.webhooks

    @property
    def tracker(self):
        return self.state.tracker


redis_client = RedisClient()
stk_push = StkPush()
