"""
Schemas Package
Marshmallow schemas for request/response validation
"""

from stkpay.schemas.payment_schema import (
    InitiatePaymentSchema,
    InitiationResultSchema
)
from stkpay.schemas.webhook_schema import (
    MPesaCallbackSchema,
    StkCallbackSchema,
    StkQueryResponseSchema
)

__all__ = [
    'InitiatePaymentSchema',
    'InitiationResultSchema',
    'MPesaCallbackSchema',
    'StkCallbackSchema',
    'StkQueryResponseSchema'
]
