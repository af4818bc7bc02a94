from stkpay.models.payment import PaymentIntent, SignedRequest, InitiationResult
from stkpay.models.token import AccessToken
from stkpay.models.correlation import (
    CorrelationState,
    PaymentOutcome,
    NotificationResult,
    PendingCorrelation,
    ResolvedOutcome,
    outcome_for_result_code,
)

__all__ = [
    'PaymentIntent',
    'SignedRequest',
    'InitiationResult',
    'AccessToken',
    'CorrelationState',
    'PaymentOutcome',
    'NotificationResult',
    'PendingCorrelation',
    'ResolvedOutcome',
    'outcome_for_result_code',
]
