"""
Utils Package
Utility functions and helpers
"""

from stkpay.utils.clock import utcnow
from stkpay.utils.logger import get_logger, configure_app_logging, RequestLogger
from stkpay.utils.validators import (
    validate_phone_number,
    validate_amount,
    validate_text,
    validate_idempotency_key,
    sanitize_phone_number
)

__all__ = [
    'utcnow',
    'get_logger',
    'configure_app_logging',
    'RequestLogger',
    'validate_phone_number',
    'validate_amount',
    'validate_text',
    'validate_idempotency_key',
    'sanitize_phone_number'
]
