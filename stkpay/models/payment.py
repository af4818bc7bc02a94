from dataclasses import dataclass
from typing import Any, Dict, Optional

# Daraja caps what it displays on the payer's handset
MAX_REFERENCE_LENGTH = 12
MAX_DESCRIPTION_LENGTH = 13

DEFAULT_REFERENCE = 'Payment'
DEFAULT_DESCRIPTION = 'Payment'

TRANSACTION_TYPE = 'CustomerPayBillOnline'


@dataclass(frozen=True)
class PaymentIntent:
    """A caller's request to prompt a phone for payment"""
    phone: str
    amount: int
    reference: str = DEFAULT_REFERENCE
    description: str = DEFAULT_DESCRIPTION

    def to_dict(self) -> Dict[str, Any]:
        return {
            'phone': self.phone,
            'amount': self.amount,
            'reference': self.reference,
            'description': self.description,
        }


@dataclass(frozen=True)
class SignedRequest:
    """
    One STK Push submission, bound to the timestamp it was signed with.

    The payer's phone is used for both PartyA and PhoneNumber.
    """
    shortcode: str
    password: str
    timestamp: str
    amount: int
    phone: str
    callback_url: str
    reference: str
    description: str
    transaction_type: str = TRANSACTION_TYPE

    def to_payload(self) -> Dict[str, str]:
        return {
            "BusinessShortCode": self.shortcode,
            "Password":          self.password,
            "Timestamp":         self.timestamp,
            "TransactionType":   self.transaction_type,
            "Amount":            str(self.amount),
            "PartyA":            self.phone,
            "PartyB":            self.shortcode,
            "PhoneNumber":       self.phone,
            "CallBackURL":       self.callback_url,
            "AccountReference":  self.reference,
            "TransactionDesc":   self.description,
        }


@dataclass(frozen=True)
class InitiationResult:
    """Synchronous acknowledgment: the prompt was delivered, not that it was paid"""
    merchant_request_id: str
    checkout_request_id: str
    response_code: str
    response_description: str = ''
    customer_message: Optional[str] = None
