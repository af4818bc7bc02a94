"""
Pytest Configuration and Fixtures
"""
import os

# No rotating log files during tests
os.environ.setdefault('LOG_DIR', '')

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import fakeredis
import pytest

from stkpay import create_app
from stkpay.extensions import redis_client as _redis_client
from stkpay.models import PaymentIntent
from stkpay.providers import Credentials, MPesaProvider, TokenManager
from stkpay.services.correlation_service import CorrelationTracker
from stkpay.services.payment_service import PaymentInitiator


class FakeClock:
    """Manually advanced clock for expiry tests"""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def _mock_http_response(json_data=None, status_code=200, text=None):
    """Return a mock requests.Response whose .json() returns json_data."""
    resp = Mock()
    resp.ok = 200 <= status_code < 400
    resp.status_code = status_code
    if text is not None:
        resp.text = text
        resp.json.side_effect = ValueError('No JSON object could be decoded')
    else:
        resp.text = json.dumps(json_data)
        resp.json.return_value = json_data
    return resp


@pytest.fixture
def http_response():
    return _mock_http_response


@pytest.fixture
def token_response():
    """Valid Daraja OAuth token response (expires in ~1 hour)."""
    def factory(token='daraja_tok_abc', expires_in='3599'):
        return _mock_http_response({'access_token': token, 'expires_in': expires_in})
    return factory


@pytest.fixture
def stk_ack_response():
    """Daraja STK Push acceptance"""
    def factory(checkout_id='ws_CO_1', merchant_id='29115-34620561-1'):
        return _mock_http_response({
            'MerchantRequestID': merchant_id,
            'CheckoutRequestID': checkout_id,
            'ResponseCode': '0',
            'ResponseDescription': 'Success. Request accepted for processing',
            'CustomerMessage': 'Success. Request accepted for processing',
        })
    return factory


@pytest.fixture
def callback_payload():
    """Daraja STK callback body"""
    def factory(checkout_id='ws_CO_1', result_code=0, result_desc=None, with_metadata=True):
        stk = {
            'MerchantRequestID': '29115-34620561-1',
            'CheckoutRequestID': checkout_id,
            'ResultCode': result_code,
            'ResultDesc': result_desc or (
                'The service request is processed successfully.' if result_code == 0
                else 'Request cancelled by user'
            ),
        }
        if with_metadata and result_code == 0:
            stk['CallbackMetadata'] = {
                'Item': [
                    {'Name': 'Amount', 'Value': 100.0},
                    {'Name': 'MpesaReceiptNumber', 'Value': 'NLJ7RT61SV'},
                    {'Name': 'Balance'},
                    {'Name': 'TransactionDate', 'Value': 20191219102115},
                    {'Name': 'PhoneNumber', 'Value': 254796022656},
                ]
            }
        return {'Body': {'stkCallback': stk}}
    return factory


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def credentials():
    return Credentials(
        consumer_key='test_consumer_key',
        consumer_secret='test_consumer_secret',
        shortcode='174379',
        passkey='test_passkey',
        callback_url='https://example.com/api/v1/webhooks/mpesa',
        base_url='https://sandbox.safaricom.co.ke',
    )


@pytest.fixture
def token_manager(credentials, clock):
    return TokenManager(credentials, session=Mock(), clock=clock)


@pytest.fixture
def provider(credentials, token_manager):
    return MPesaProvider(
        credentials,
        token_manager,
        session=Mock(),
        clock=lambda: datetime(2024, 1, 1, 12, 0, 0),
    )


@pytest.fixture
def tracker(clock):
    return CorrelationTracker(expiry_seconds=180, retention_seconds=3600, clock=clock)


@pytest.fixture
def initiator(provider, tracker):
    return PaymentInitiator(provider, tracker)


@pytest.fixture
def intent():
    return PaymentIntent(phone='254796022656', amount=100)


@pytest.fixture(scope='function')
def app():
    """Create application for testing"""
    app = create_app('testing')

    # Establish application context
    ctx = app.app_context()
    ctx.push()

    yield app

    ctx.pop()


@pytest.fixture(scope='function')
def redis_client(app):
    """
    Fake Redis for tests + patch the app redis client.
    """
    fake_redis = fakeredis.FakeStrictRedis(decode_responses=True)

    with patch.object(_redis_client, 'client', fake_redis):
        yield fake_redis

    fake_redis.flushall()


@pytest.fixture(scope='function')
def client(app, redis_client):
    """Create a test client"""
    return app.test_client()


@pytest.fixture(scope='function')
def gateway(app):
    """The app's wired STK Push components"""
    return app.extensions['stkpay']
