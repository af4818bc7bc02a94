from stkpay.errors.exceptions import (
    AppError,
    ConfigurationError,
    ValidationError,
    GatewayError,
    AuthenticationError,
    TransientNetworkError,
    GatewayCommunicationError,
    GatewayRejection,
    DuplicateCorrelationError,
    UnknownCorrelationError,
)

__all__ = [
    'AppError',
    'ConfigurationError',
    'ValidationError',
    'GatewayError',
    'AuthenticationError',
    'TransientNetworkError',
    'GatewayCommunicationError',
    'GatewayRejection',
    'DuplicateCorrelationError',
    'UnknownCorrelationError',
]
