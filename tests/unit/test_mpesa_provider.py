"""
Unit Tests for the M-Pesa Daraja provider
"""

import base64
from datetime import datetime
from unittest.mock import Mock

import pytest
import requests

from stkpay.errors import (
    AuthenticationError,
    GatewayCommunicationError,
    GatewayRejection,
    TransientNetworkError,
    ValidationError,
)
from stkpay.models import PaymentIntent, PaymentOutcome
from stkpay.providers import MPesaProvider

STK_URL = 'https://sandbox.safaricom.co.ke/mpesa/stkpush/v1/processrequest'
QUERY_URL = 'https://sandbox.safaricom.co.ke/mpesa/stkpushquery/v1/query'


@pytest.fixture
def authed_provider(provider, token_response):
    provider.token_manager._session.get.return_value = token_response('tok-1')
    return provider


class TestBuildStkRequest:

    def test_payload_fields(self, provider):
        intent = PaymentIntent(phone='254712345678', amount=250, reference='INV-001', description='Order 42')

        payload = provider.build_stk_request(intent).to_payload()

        assert payload == {
            'BusinessShortCode': '174379',
            'Password': base64.b64encode(b'174379test_passkey20240101120000').decode(),
            'Timestamp': '20240101120000',
            'TransactionType': 'CustomerPayBillOnline',
            'Amount': '250',
            'PartyA': '254712345678',
            'PartyB': '174379',
            'PhoneNumber': '254712345678',
            'CallBackURL': 'https://example.com/api/v1/webhooks/mpesa',
            'AccountReference': 'INV-001',
            'TransactionDesc': 'Order 42',
        }


class TestStkPush:

    def test_accepted(self, authed_provider, stk_ack_response, intent):
        authed_provider._session.post.return_value = stk_ack_response('ws_CO_42', '29115-1')

        result = authed_provider.stk_push(intent)

        assert result.checkout_request_id == 'ws_CO_42'
        assert result.merchant_request_id == '29115-1'
        assert result.response_code == '0'
        assert result.customer_message == 'Success. Request accepted for processing'

        args, kwargs = authed_provider._session.post.call_args
        assert args[0] == STK_URL
        assert kwargs['headers']['Authorization'] == 'Bearer tok-1'
        assert kwargs['json']['PhoneNumber'] == '254796022656'
        assert kwargs['timeout'] == 30

    def test_non_zero_response_code_is_rejection(self, authed_provider, http_response, intent):
        authed_provider._session.post.return_value = http_response({
            'ResponseCode': '1',
            'ResponseDescription': 'Invalid BusinessShortCode',
        })

        with pytest.raises(GatewayRejection) as exc_info:
            authed_provider.stk_push(intent)

        assert exc_info.value.response_code == '1'
        assert exc_info.value.response_description == 'Invalid BusinessShortCode'
        assert exc_info.value.status_code == 422

    def test_missing_response_code(self, authed_provider, http_response, intent):
        authed_provider._session.post.return_value = http_response({'CheckoutRequestID': 'ws_CO_1'})

        with pytest.raises(GatewayCommunicationError):
            authed_provider.stk_push(intent)

    def test_accepted_without_identifiers(self, authed_provider, http_response, intent):
        authed_provider._session.post.return_value = http_response({'ResponseCode': '0'})

        with pytest.raises(GatewayCommunicationError, match='identifiers'):
            authed_provider.stk_push(intent)

    def test_http_error(self, authed_provider, http_response, intent):
        authed_provider._session.post.return_value = http_response(
            {'errorCode': '400.002.02', 'errorMessage': 'Bad Request - Invalid Amount'}, status_code=400
        )

        with pytest.raises(GatewayCommunicationError, match='Invalid Amount') as exc_info:
            authed_provider.stk_push(intent)

        assert exc_info.value.upstream_status == 400

    def test_non_json_body(self, authed_provider, http_response, intent):
        authed_provider._session.post.return_value = http_response(text='<html>gateway</html>')

        with pytest.raises(GatewayCommunicationError, match='not a JSON object'):
            authed_provider.stk_push(intent)

    def test_timeout_is_transient_and_not_resubmitted(self, authed_provider, intent):
        authed_provider._session.post.side_effect = requests.Timeout('read timed out')

        with pytest.raises(TransientNetworkError, match='outcome unknown'):
            authed_provider.stk_push(intent)

        assert authed_provider._session.post.call_count == 1

    def test_connection_error_is_transient(self, authed_provider, intent):
        authed_provider._session.post.side_effect = requests.ConnectionError('refused')

        with pytest.raises(TransientNetworkError):
            authed_provider.stk_push(intent)

    def test_token_failure_prevents_submission(self, provider, http_response, intent):
        provider.token_manager._session.get.return_value = http_response({}, status_code=400)

        with pytest.raises(AuthenticationError):
            provider.stk_push(intent)

        provider._session.post.assert_not_called()


class TestStaleTokenRetry:

    def test_401_renews_token_and_resubmits_once(
            self, provider, token_response, http_response, stk_ack_response, intent):
        provider.token_manager._session.get.side_effect = [token_response('stale'), token_response('fresh')]
        provider._session.post.side_effect = [
            http_response({'errorMessage': 'Invalid Access Token'}, status_code=401),
            stk_ack_response(),
        ]

        result = provider.stk_push(intent)

        assert result.checkout_request_id == 'ws_CO_1'
        assert provider._session.post.call_count == 2
        first, second = provider._session.post.call_args_list
        assert first.kwargs['headers']['Authorization'] == 'Bearer stale'
        assert second.kwargs['headers']['Authorization'] == 'Bearer fresh'
        assert provider.token_manager.cached_token.value == 'fresh'

    def test_second_401_raises_authentication_error(self, provider, token_response, http_response, intent):
        provider.token_manager._session.get.side_effect = [token_response('stale'), token_response('fresh')]
        provider._session.post.return_value = http_response({}, status_code=401)

        with pytest.raises(AuthenticationError, match='rejected twice'):
            provider.stk_push(intent)

        assert provider._session.post.call_count == 2

    def test_resubmission_is_re_signed(self, credentials, token_manager, token_response, http_response,
                                       stk_ack_response, intent):
        times = iter([datetime(2024, 1, 1, 12, 0, 0), datetime(2024, 1, 1, 12, 0, 1)])
        provider = MPesaProvider(credentials, token_manager, session=Mock(), clock=lambda: next(times))
        token_manager._session.get.side_effect = [token_response('stale'), token_response('fresh')]
        provider._session.post.side_effect = [http_response({}, status_code=401), stk_ack_response()]

        provider.stk_push(intent)

        first, second = provider._session.post.call_args_list
        assert first.kwargs['json']['Timestamp'] == '20240101120000'
        assert second.kwargs['json']['Timestamp'] == '20240101120001'
        assert first.kwargs['json']['Password'] != second.kwargs['json']['Password']


class TestQueryStkStatus:

    def test_final_result(self, authed_provider, http_response):
        authed_provider._session.post.return_value = http_response({
            'ResponseCode': '0',
            'ResponseDescription': 'The service request has been accepted successsfully',
            'MerchantRequestID': '29115-1',
            'CheckoutRequestID': 'ws_CO_1',
            'ResultCode': '1032',
            'ResultDesc': 'Request cancelled by user',
        })

        result = authed_provider.query_stk_status('ws_CO_1')

        assert result.outcome == PaymentOutcome.CANCELLED
        assert result.result_code == '1032'
        assert result.checkout_request_id == 'ws_CO_1'

        args, kwargs = authed_provider._session.post.call_args
        assert args[0] == QUERY_URL
        assert kwargs['json']['CheckoutRequestID'] == 'ws_CO_1'
        assert kwargs['json']['BusinessShortCode'] == '174379'

    def test_still_processing_returns_none(self, authed_provider, http_response):
        authed_provider._session.post.return_value = http_response(
            {'errorCode': '500.001.1001', 'errorMessage': 'The transaction is being processed'},
            status_code=500,
        )

        assert authed_provider.query_stk_status('ws_CO_1') is None

    def test_other_server_error_raises(self, authed_provider, http_response):
        authed_provider._session.post.return_value = http_response(
            {'errorCode': '500.003.02', 'errorMessage': 'System is busy'}, status_code=500,
        )

        with pytest.raises(GatewayCommunicationError):
            authed_provider.query_stk_status('ws_CO_1')

    def test_unexpected_shape_raises(self, authed_provider, http_response):
        authed_provider._session.post.return_value = http_response({'ResponseCode': '0'})

        with pytest.raises(GatewayCommunicationError, match='unexpected response shape'):
            authed_provider.query_stk_status('ws_CO_1')


class TestHandleWebhook:

    def test_successful_callback(self, provider, callback_payload):
        result = provider.handle_webhook(callback_payload('ws_CO_1', 0))

        assert result.checkout_request_id == 'ws_CO_1'
        assert result.merchant_request_id == '29115-34620561-1'
        assert result.outcome == PaymentOutcome.SUCCESS
        assert result.result_code == '0'
        assert result.receipt_number == 'NLJ7RT61SV'
        assert result.amount == 100
        assert result.settled_at == datetime(2019, 12, 19, 10, 21, 15)
        assert result.phone == '254796022656'

    @pytest.mark.parametrize('code, outcome', [
        (1032, PaymentOutcome.CANCELLED),
        (1037, PaymentOutcome.TIMEOUT),
        (1019, PaymentOutcome.TIMEOUT),
        (1, PaymentOutcome.FAILURE),
        (2001, PaymentOutcome.FAILURE),
    ])
    def test_result_codes(self, provider, callback_payload, code, outcome):
        result = provider.handle_webhook(callback_payload('ws_CO_1', code))

        assert result.outcome == outcome
        assert result.receipt_number is None
        assert result.amount is None

    @pytest.mark.parametrize('raw_amount, expected', [
        (100.0, 100),
        ('250', 250),
        (100.5, None),
        ('99.99', None),
        ('n/a', None),
    ])
    def test_settled_amount_must_be_whole(self, provider, callback_payload, raw_amount, expected):
        payload = callback_payload('ws_CO_1', 0)
        items = payload['Body']['stkCallback']['CallbackMetadata']['Item']
        items[0] = {'Name': 'Amount', 'Value': raw_amount}

        result = provider.handle_webhook(payload)

        assert result.amount == expected
        assert result.receipt_number == 'NLJ7RT61SV'

    def test_flat_callback_object(self, provider):
        result = provider.handle_webhook({'CheckoutRequestID': 'ws_CO_9', 'ResultCode': '0'})

        assert result.checkout_request_id == 'ws_CO_9'
        assert result.outcome == PaymentOutcome.SUCCESS

    @pytest.mark.parametrize('payload', [
        None,
        [],
        'not json',
        {},
        {'Body': {}},
        {'Body': {'stkCallback': {'ResultCode': 0}}},
        {'Body': {'stkCallback': {'CheckoutRequestID': 'ws_CO_1'}}},
        {'Body': {'stkCallback': {'CheckoutRequestID': 'ws_CO_1', 'ResultCode': 'abc'}}},
    ])
    def test_malformed_callback(self, provider, payload):
        with pytest.raises(ValidationError) as exc_info:
            provider.handle_webhook(payload)

        assert exc_info.value.field == 'Body'
