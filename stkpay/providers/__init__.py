from stkpay.providers.credentials import Credentials
from stkpay.providers.mpesa_provider import MPesaProvider
from stkpay.providers.signer import RequestSigner, generate_timestamp, sign
from stkpay.providers.token_manager import TokenManager

__all__ = ['Credentials', 'MPesaProvider', 'RequestSigner', 'TokenManager', 'generate_timestamp', 'sign']
