"""
Unit Tests for configuration and app wiring
"""

import pytest

from stkpay import create_app
from stkpay.errors import ConfigurationError
from stkpay.providers import Credentials


class TestCredentials:

    def test_from_config(self):
        credentials = Credentials.from_config({
            'MPESA_BASE_URL': 'https://api.safaricom.co.ke/',
            'MPESA_CONSUMER_KEY': ' key ',
            'MPESA_CONSUMER_SECRET': 'secret',
            'MPESA_SHORTCODE': 174379,
            'MPESA_PASSKEY': 'passkey',
            'MPESA_CALLBACK_URL': 'https://example.com/cb',
        })

        assert credentials.base_url == 'https://api.safaricom.co.ke'
        assert credentials.consumer_key == 'key'
        assert credentials.shortcode == '174379'

    def test_missing_settings_are_all_reported(self):
        with pytest.raises(ConfigurationError) as exc_info:
            Credentials.from_config({'MPESA_BASE_URL': 'https://sandbox.safaricom.co.ke', 'MPESA_PASSKEY': '  '})

        assert set(exc_info.value.missing) == {
            'MPESA_CONSUMER_KEY', 'MPESA_CONSUMER_SECRET', 'MPESA_SHORTCODE', 'MPESA_PASSKEY', 'MPESA_CALLBACK_URL',
        }

    def test_repr_hides_secrets(self, credentials):
        text = repr(credentials)

        assert 'test_passkey' not in text
        assert 'test_consumer_secret' not in text
        assert '174379' in text


class TestCreateApp:

    @pytest.mark.parametrize('key', ['MPESA_PASSKEY', 'MPESA_CONSUMER_KEY', 'MPESA_CALLBACK_URL'])
    def test_missing_credential_fails_startup(self, key):
        with pytest.raises(ConfigurationError, match=key):
            create_app('testing', overrides={key: ''})

    def test_each_app_gets_its_own_components(self):
        first = create_app('testing')
        second = create_app('testing', overrides={'MPESA_SHORTCODE': '600000'})

        first_state = first.extensions['stkpay']
        second_state = second.extensions['stkpay']

        assert first_state.token_manager is not second_state.token_manager
        assert first_state.tracker is not second_state.tracker
        assert second_state.credentials.shortcode == '600000'

    def test_config_values_reach_components(self):
        app = create_app('testing', overrides={
            'MPESA_REQUEST_TIMEOUT': 7,
            'CORRELATION_EXPIRY_SECONDS': 90,
        })
        state = app.extensions['stkpay']

        assert state.provider.timeout == 7
        assert state.tracker.expiry_window.total_seconds() == 90

    def test_no_sweeper_under_testing(self, app, gateway):
        assert gateway.sweeper is None
