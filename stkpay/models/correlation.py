from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from stkpay.models.payment import PaymentIntent


class CorrelationState(str, Enum):
    PENDING = 'pending'
    RESOLVED = 'resolved'
    EXPIRED = 'expired'


class PaymentOutcome(str, Enum):
    SUCCESS = 'success'
    FAILURE = 'failure'
    CANCELLED = 'cancelled'
    TIMEOUT = 'timeout'


# Daraja ResultCode -> outcome; anything unlisted is a failure
_RESULT_CODE_OUTCOMES: Dict[str, PaymentOutcome] = {
    "0":    PaymentOutcome.SUCCESS,
    "1032": PaymentOutcome.CANCELLED,   # Request cancelled by user
    "1037": PaymentOutcome.TIMEOUT,     # USSD timeout, payer unreachable
    "1019": PaymentOutcome.TIMEOUT,     # Transaction expired
}


def outcome_for_result_code(code: Any) -> PaymentOutcome:
    return _RESULT_CODE_OUTCOMES.get(str(code).strip(), PaymentOutcome.FAILURE)


@dataclass(frozen=True)
class NotificationResult:
    """Parsed asynchronous result for one checkout request"""
    checkout_request_id: str
    outcome: PaymentOutcome
    result_code: str
    result_desc: str = ''
    merchant_request_id: Optional[str] = None
    receipt_number: Optional[str] = None
    amount: Optional[int] = None
    settled_at: Optional[datetime] = None
    phone: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'checkout_request_id': self.checkout_request_id,
            'merchant_request_id': self.merchant_request_id,
            'outcome': self.outcome.value,
            'result_code': self.result_code,
            'result_desc': self.result_desc,
            'receipt_number': self.receipt_number,
            'amount': self.amount,
            'settled_at': self.settled_at.isoformat() if self.settled_at else None,
            'phone': self.phone,
        }


@dataclass
class PendingCorrelation:
    """Tracker entry; only CorrelationTracker mutates it"""
    merchant_request_id: str
    checkout_request_id: str
    intent: PaymentIntent
    created_at: datetime
    state: CorrelationState = CorrelationState.PENDING
    closed_at: Optional[datetime] = None
    notification: Optional[NotificationResult] = None

    def snapshot(self, duplicate: bool = False) -> 'ResolvedOutcome':
        return ResolvedOutcome(
            merchant_request_id=self.merchant_request_id,
            checkout_request_id=self.checkout_request_id,
            state=self.state,
            intent=self.intent,
            created_at=self.created_at,
            closed_at=self.closed_at,
            notification=self.notification,
            duplicate=duplicate,
        )


@dataclass(frozen=True)
class ResolvedOutcome:
    """Immutable view of a correlation entry handed to callers and listeners"""
    merchant_request_id: str
    checkout_request_id: str
    state: CorrelationState
    intent: PaymentIntent
    created_at: datetime
    closed_at: Optional[datetime] = None
    notification: Optional[NotificationResult] = None
    duplicate: bool = False

    @property
    def outcome(self) -> Optional[PaymentOutcome]:
        return self.notification.outcome if self.notification else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'merchant_request_id': self.merchant_request_id,
            'checkout_request_id': self.checkout_request_id,
            'state': self.state.value,
            'outcome': self.outcome.value if self.outcome else None,
            'intent': self.intent.to_dict(),
            'created_at': self.created_at.isoformat(),
            'closed_at': self.closed_at.isoformat() if self.closed_at else None,
            'notification': self.notification.to_dict() if self.notification else None,
            'duplicate': self.duplicate,
        }
