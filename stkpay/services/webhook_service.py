"""
Webhook Service
Turns M-Pesa callbacks into tracker resolutions
"""

from typing import Any, Dict

from stkpay.errors import UnknownCorrelationError, ValidationError
from stkpay.providers.mpesa_provider import MPesaProvider
from stkpay.services.correlation_service import CorrelationTracker
from stkpay.utils.logger import get_logger

logger = get_logger(__name__)


class WebhookService:
    """
    Handles STK Push result callbacks.

    Daraja retries any callback that does not get a 2xx answer, so nothing
    here is allowed to propagate: every outcome becomes a status string.
    """

    STATUS_RESOLVED = 'resolved'
    STATUS_DUPLICATE = 'duplicate'
    STATUS_UNKNOWN = 'unknown'
    STATUS_EXPIRED = 'expired'
    STATUS_MALFORMED = 'malformed'
    STATUS_ERROR = 'error'

    def __init__(self, provider: MPesaProvider, tracker: CorrelationTracker):
        self.provider = provider
        self.tracker = tracker

    def process_callback(self, payload: Any) -> Dict[str, Any]:
        """
        Parse and apply a callback payload

        Args:
            payload: Parsed JSON body (may be None or any shape)

        Returns:
            Dict containing:
                - status: one of the STATUS_* values
                - checkout_request_id: when the payload could be parsed
                - outcome: payment outcome when resolved or duplicate
        """
        try:
            notification = self.provider.handle_webhook(payload)
        except ValidationError as e:
            logger.error(f'Malformed M-Pesa callback: {e.details} - payload: {payload!r}')
            return {'status': self.STATUS_MALFORMED}

        try:
            result = self.tracker.resolve(notification)
        except Exception as e:
            logger.exception(f'Callback for {notification.checkout_request_id} could not be applied: {str(e)}')
            return {
                'status': self.STATUS_ERROR,
                'checkout_request_id': notification.checkout_request_id,
            }

        if isinstance(result, UnknownCorrelationError):
            if result.reason == UnknownCorrelationError.REASON_EXPIRED:
                status = self.STATUS_EXPIRED
            else:
                status = self.STATUS_UNKNOWN
            return {
                'status': status,
                'checkout_request_id': notification.checkout_request_id,
            }

        return {
            'status': self.STATUS_DUPLICATE if result.duplicate else self.STATUS_RESOLVED,
            'checkout_request_id': notification.checkout_request_id,
            'outcome': result.outcome.value if result.outcome else None,
        }
