import os
from dotenv import load_dotenv

load_dotenv()


def _int_env(name, default):
    value = os.getenv(name)
    return int(value) if value not in (None, '') else default


class Config:
    """Base configuration"""
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key')

    REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
    IDEMPOTENCY_TTL = _int_env('IDEMPOTENCY_TTL', 86400)

    # M-Pesa Daraja credentials - required, no defaults
    MPESA_BASE_URL = os.getenv('MPESA_BASE_URL')
    MPESA_CONSUMER_KEY = os.getenv('MPESA_CONSUMER_KEY')
    MPESA_CONSUMER_SECRET = os.getenv('MPESA_CONSUMER_SECRET')
    MPESA_SHORTCODE = os.getenv('MPESA_SHORTCODE')
    MPESA_PASSKEY = os.getenv('MPESA_PASSKEY')
    MPESA_CALLBACK_URL = os.getenv('MPESA_CALLBACK_URL')

    # M-Pesa HTTP behaviour
    MPESA_TOKEN_TIMEOUT = _int_env('MPESA_TOKEN_TIMEOUT', 15)
    MPESA_REQUEST_TIMEOUT = _int_env('MPESA_REQUEST_TIMEOUT', 30)
    MPESA_TOKEN_RETRIES = _int_env('MPESA_TOKEN_RETRIES', 3)
    MPESA_TOKEN_DEFAULT_TTL = _int_env('MPESA_TOKEN_DEFAULT_TTL', 3300)
    MPESA_PHONE_COUNTRY_CODE = os.getenv('MPESA_PHONE_COUNTRY_CODE', '254')

    # Correlation tracking
    CORRELATION_EXPIRY_SECONDS = _int_env('CORRELATION_EXPIRY_SECONDS', 180)
    CORRELATION_RETENTION_SECONDS = _int_env('CORRELATION_RETENTION_SECONDS', 3600)
    CORRELATION_SWEEP_INTERVAL = _int_env('CORRELATION_SWEEP_INTERVAL', 30)


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    REDIS_URL = 'redis://localhost:6379/15'

    MPESA_BASE_URL = 'https://sandbox.safaricom.co.ke'
    MPESA_CONSUMER_KEY = 'test_consumer_key'
    MPESA_CONSUMER_SECRET = 'test_consumer_secret'
    MPESA_SHORTCODE = '174379'
    MPESA_PASSKEY = 'test_passkey'
    MPESA_CALLBACK_URL = 'https://example.com/api/v1/webhooks/mpesa'

    MPESA_TOKEN_RETRIES = 0
    CORRELATION_SWEEP_INTERVAL = 0


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
