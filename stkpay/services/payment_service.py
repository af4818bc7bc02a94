from typing import Any, Dict, Optional, Union

from stkpay.errors import AppError, DuplicateCorrelationError, UnknownCorrelationError, ValidationError
from stkpay.models import InitiationResult, PaymentIntent, ResolvedOutcome
from stkpay.models.payment import MAX_DESCRIPTION_LENGTH, MAX_REFERENCE_LENGTH
from stkpay.providers.mpesa_provider import MPesaProvider
from stkpay.services.correlation_service import CorrelationTracker
from stkpay.utils.logger import get_logger
from stkpay.utils.validators import (
    DEFAULT_COUNTRY_CODE,
    validate_amount,
    validate_phone_number,
    validate_text,
)

logger = get_logger(__name__)


class PaymentInitiator:
    """Core STK Push initiation service"""

    def __init__(
            self,
            provider: MPesaProvider,
            tracker: CorrelationTracker,
            country_code: str = DEFAULT_COUNTRY_CODE
    ):
        self.provider = provider
        self.tracker = tracker
        self.country_code = country_code

    def validate(self, intent: PaymentIntent) -> None:
        """
        Reject intents the gateway must never see

        Raises:
            ValidationError: naming the first offending field
        """
        checks = [
            ('amount', validate_amount(intent.amount)),
            ('phone', validate_phone_number(intent.phone, self.country_code)),
            ('reference', validate_text(intent.reference, 'Reference', MAX_REFERENCE_LENGTH)),
            ('description', validate_text(intent.description, 'Description', MAX_DESCRIPTION_LENGTH)),
        ]
        for field, (is_valid, error) in checks:
            if not is_valid:
                raise ValidationError(error, field=field)

    def initiate(self, intent: PaymentIntent) -> InitiationResult:
        """
        Prompt the payer's phone and start tracking the request

        Args:
            intent: Payment intent

        Returns:
            InitiationResult; proof the prompt was delivered, not that it was paid

        Raises:
            ValidationError, AuthenticationError, TransientNetworkError,
            GatewayRejection, GatewayCommunicationError, DuplicateCorrelationError
        """
        self.validate(intent)

        logger.info(f'Initiating STK Push of {intent.amount} for {_mask_phone(intent.phone)}')

        try:
            result = self.provider.stk_push(intent)
        except AppError as e:
            logger.error(f'STK Push failed ({e.error}): {e.message}')
            raise

        try:
            self.tracker.open(result.merchant_request_id, result.checkout_request_id, intent)
        except DuplicateCorrelationError:
            # the payer has already been prompted; keep the ids for reconciliation
            logger.error(
                f'STK Push accepted but not tracked: checkout request {result.checkout_request_id}, '
                f'merchant request {result.merchant_request_id}, amount {intent.amount}, '
                f'phone {_mask_phone(intent.phone)}'
            )
            raise

        logger.info(f'STK Push accepted: {result.checkout_request_id}')
        return result

    def get_status(self, checkout_request_id: str) -> Optional[ResolvedOutcome]:
        """Get the tracked state of a checkout request"""
        return self.tracker.get(checkout_request_id)

    def query_status(self, checkout_request_id: str) -> Dict[str, Any]:
        """
        Ask the gateway for the result of a checkout request

        A final answer resolves the tracker entry exactly as a callback would.

        Returns:
            Dict containing:
                - checkout_request_id
                - final: whether the gateway reported a final result
                - result: the gateway's parsed answer (or None)
                - correlation: tracker view after applying it (or None)
        """
        notification = self.provider.query_stk_status(checkout_request_id)

        correlation: Union[ResolvedOutcome, UnknownCorrelationError, None]
        if notification is None:
            correlation = self.tracker.get(checkout_request_id)
        else:
            correlation = self.tracker.resolve(notification)

        if isinstance(correlation, UnknownCorrelationError):
            correlation = None

        return {
            'checkout_request_id': checkout_request_id,
            'final': notification is not None,
            'result': notification.to_dict() if notification else None,
            'correlation': correlation.to_dict() if correlation else None,
        }


def _mask_phone(phone: str) -> str:
    if not phone or len(phone) < 4:
        return '***'
    return f'{phone[:3]}****{phone[-3:]}'
