from typing import Any, Dict, List, Optional


class AppError(Exception):
    status_code = 500
    error = "Application error"

    def __init__(self, message, status_code=None):
        super().__init__(message)
        if status_code:
            self.status_code = status_code
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': False,
            'error': self.error,
            'message': self.message,
        }


class ConfigurationError(AppError):
    """Raised at startup when required gateway settings are missing"""
    error = "Configuration error"

    def __init__(self, missing: List[str]):
        super().__init__(f"Missing required configuration: {', '.join(missing)}")
        self.missing = list(missing)


class ValidationError(AppError):
    status_code = 400
    error = "Validation error"

    def __init__(self, message, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.field = field
        self.details = details

    def to_dict(self):
        data = super().to_dict()
        if self.field:
            data['field'] = self.field
        if self.details:
            data['details'] = self.details
        return data


class GatewayError(AppError):
    """Base class for failures talking to the payment gateway"""
    status_code = 502
    error = "Gateway error"

    def __init__(self, message, upstream_status: Optional[int] = None, upstream_body: Optional[str] = None):
        super().__init__(message)
        self.upstream_status = upstream_status
        self.upstream_body = upstream_body

    def to_dict(self):
        data = super().to_dict()
        if self.upstream_status is not None:
            data['upstream_status'] = self.upstream_status
        return data


class AuthenticationError(GatewayError):
    """Gateway refused the consumer credentials or the bearer token"""
    error = "Gateway authentication failed"


class TransientNetworkError(GatewayError):
    """Timeout or connection failure; the request may or may not have landed"""
    status_code = 504
    error = "Gateway unreachable"


class GatewayCommunicationError(GatewayError):
    """Unexpected HTTP status or response shape from the gateway"""
    error = "Gateway communication error"


class GatewayRejection(AppError):
    """Gateway answered with a non-zero ResponseCode"""
    status_code = 422
    error = "Payment rejected by gateway"

    def __init__(self, response_code: str, response_description: str = ''):
        super().__init__(f"Gateway rejected request ({response_code}): {response_description}")
        self.response_code = response_code
        self.response_description = response_description

    def to_dict(self):
        data = super().to_dict()
        data['response_code'] = self.response_code
        data['response_description'] = self.response_description
        return data


class DuplicateCorrelationError(AppError):
    status_code = 409
    error = "Duplicate correlation"

    def __init__(self, checkout_request_id: str):
        super().__init__(f"Checkout request {checkout_request_id} is already pending")
        self.checkout_request_id = checkout_request_id

    def to_dict(self):
        data = super().to_dict()
        data['checkout_request_id'] = self.checkout_request_id
        return data


class UnknownCorrelationError(AppError):
    status_code = 404
    error = "Unknown correlation"

    REASON_UNKNOWN = 'unknown'
    REASON_EXPIRED = 'expired'

    def __init__(self, checkout_request_id: str, reason: str = REASON_UNKNOWN):
        if reason == self.REASON_EXPIRED:
            message = f"Checkout request {checkout_request_id} expired before a result arrived"
        else:
            message = f"No pending checkout request {checkout_request_id}"
        super().__init__(message)
        self.checkout_request_id = checkout_request_id
        self.reason = reason

    def to_dict(self):
        data = super().to_dict()
        data['checkout_request_id'] = self.checkout_request_id
        data['reason'] = self.reason
        return data
