"""
M-Pesa Payment Provider
Based on the Safaricom Daraja API.

Supported flows
---------------
STK Push (Lipa na M-Pesa Online)
    POST /mpesa/stkpush/v1/processrequest
    POST /mpesa/stkpushquery/v1/query         (status poll)

Authentication
    Delegated to TokenManager (GET /oauth/v1/generate, Basic auth).
    A 401 from a business endpoint invalidates the cached token and the
    request is re-signed and resubmitted exactly once.

Webhook / callback
    Safaricom POSTs {"Body": {"stkCallback": {...}}} to the CallBackURL.
    handle_webhook() turns it into a NotificationResult.

Timeouts and connection failures are surfaced as TransientNetworkError and
never resubmitted here: Daraja may already have prompted the payer.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import requests
from marshmallow import ValidationError as SchemaValidationError

from stkpay.errors import (
    AuthenticationError,
    GatewayCommunicationError,
    GatewayRejection,
    TransientNetworkError,
    ValidationError,
)
from stkpay.models import (
    InitiationResult,
    NotificationResult,
    PaymentIntent,
    SignedRequest,
    outcome_for_result_code,
)
from stkpay.providers.credentials import Credentials
from stkpay.providers.signer import TIMESTAMP_FORMAT, RequestSigner
from stkpay.providers.token_manager import TokenManager
from stkpay.schemas.webhook_schema import MPesaCallbackSchema, StkQueryResponseSchema

logger = logging.getLogger(__name__)

# Daraja answers a status query for an unfinished prompt with HTTP 500 and this code
_STILL_PROCESSING_CODE = "500.001.1001"

_callback_schema = MPesaCallbackSchema()
_query_schema = StkQueryResponseSchema()


class MPesaProvider:
    """M-Pesa (Daraja API) STK Push adapter."""

    # Daraja endpoint paths
    _EP_STK_PUSH  = "/mpesa/stkpush/v1/processrequest"
    _EP_STK_QUERY = "/mpesa/stkpushquery/v1/query"

    def __init__(
        self,
        credentials: Credentials,
        token_manager: TokenManager,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.credentials = credentials
        self.token_manager = token_manager
        self.timeout = timeout
        self.signer = RequestSigner(credentials, clock=clock)

        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

    # Outbound

    def build_stk_request(self, intent: PaymentIntent) -> SignedRequest:
        """Stamp, sign and assemble a single STK Push submission."""
        timestamp, password = self.signer.stamp()
        return SignedRequest(
            shortcode=self.credentials.shortcode,
            password=password,
            timestamp=timestamp,
            amount=intent.amount,
            phone=intent.phone,
            callback_url=self.credentials.callback_url,
            reference=intent.reference,
            description=intent.description,
        )

    def stk_push(self, intent: PaymentIntent) -> InitiationResult:
        """
        Send an STK Push prompt to the intent's phone.

        The intent must already be validated.

        Returns:
            InitiationResult carrying MerchantRequestID / CheckoutRequestID

        Raises:
            AuthenticationError, TransientNetworkError,
            GatewayRejection, GatewayCommunicationError
        """
        resp = self._post(
            self._EP_STK_PUSH,
            lambda: self.build_stk_request(intent).to_payload(),
            context="stk_push",
        )
        data = self._handle_response(resp, "stk_push")

        response_code = data.get("ResponseCode")
        if response_code is None:
            raise GatewayCommunicationError(
                "MPesaProvider [stk_push]: response has no ResponseCode",
                upstream_status=resp.status_code,
                upstream_body=resp.text,
            )

        response_code = str(response_code).strip()
        description = data.get("ResponseDescription") or data.get("errorMessage") or ""
        if response_code != "0":
            logger.warning("MPesa [stk_push] rejected: %s %s", response_code, description)
            raise GatewayRejection(response_code, description)

        merchant_id = data.get("MerchantRequestID")
        checkout_id = data.get("CheckoutRequestID")
        if not merchant_id or not checkout_id:
            raise GatewayCommunicationError(
                "MPesaProvider [stk_push]: accepted response is missing request identifiers",
                upstream_status=resp.status_code,
                upstream_body=resp.text,
            )

        return InitiationResult(
            merchant_request_id=str(merchant_id),
            checkout_request_id=str(checkout_id),
            response_code=response_code,
            response_description=description,
            customer_message=data.get("CustomerMessage"),
        )

    def query_stk_status(self, checkout_request_id: str) -> Optional[NotificationResult]:
        """
        Poll Daraja for the result of an STK Push.

        Returns:
            NotificationResult once the prompt is finished, None while the
            payer has not answered yet
        """
        def build_payload():
            timestamp, password = self.signer.stamp()
            return {
                "BusinessShortCode": self.credentials.shortcode,
                "Password":          password,
                "Timestamp":         timestamp,
                "CheckoutRequestID": checkout_request_id,
            }

        resp = self._post(self._EP_STK_QUERY, build_payload, context="stk_query")

        if not resp.ok:
            body = self._json_or_none(resp)
            if isinstance(body, dict) and body.get("errorCode") == _STILL_PROCESSING_CODE:
                logger.info("MPesa [stk_query] %s still processing", checkout_request_id)
                return None

        data = self._handle_response(resp, "stk_query")
        try:
            parsed = _query_schema.load(data)
        except SchemaValidationError as exc:
            raise GatewayCommunicationError(
                f"MPesaProvider [stk_query]: unexpected response shape – {exc.messages}",
                upstream_status=resp.status_code,
                upstream_body=resp.text,
            ) from exc

        result_code = str(parsed["ResultCode"])
        return NotificationResult(
            checkout_request_id=parsed["CheckoutRequestID"],
            merchant_request_id=parsed.get("MerchantRequestID"),
            outcome=outcome_for_result_code(result_code),
            result_code=result_code,
            result_desc=parsed.get("ResultDesc", ""),
            raw=data,
        )

    # Inbound

    def handle_webhook(self, payload: Any) -> NotificationResult:
        """
        Parse an STK Push callback.

        Raises:
            ValidationError: payload is not a recognisable STK callback
        """
        try:
            parsed = _callback_schema.load(payload)
        except SchemaValidationError as exc:
            raise ValidationError(
                "Unrecognised M-Pesa callback payload", field="Body", details=exc.messages
            ) from exc

        stk = parsed["stkCallback"]
        result_code = str(stk["ResultCode"])

        # Extract CallbackMetadata items into a flat dict
        meta: Dict[str, Any] = {}
        for item in (stk.get("CallbackMetadata") or {}).get("Item", []):
            meta[item["Name"]] = item.get("Value")

        return NotificationResult(
            checkout_request_id=stk["CheckoutRequestID"],
            merchant_request_id=stk.get("MerchantRequestID"),
            outcome=outcome_for_result_code(result_code),
            result_code=result_code,
            result_desc=stk.get("ResultDesc", ""),
            receipt_number=meta.get("MpesaReceiptNumber"),
            amount=self._to_int(meta.get("Amount")),
            settled_at=self._parse_transaction_date(meta.get("TransactionDate")),
            phone=str(meta["PhoneNumber"]) if meta.get("PhoneNumber") is not None else None,
            raw=payload if isinstance(payload, dict) else {},
        )

    # Private – HTTP helpers

    def _post(
        self, endpoint: str, build_payload: Callable[[], Dict[str, Any]], context: str = ""
    ) -> requests.Response:
        """
        Execute an authenticated POST to a Daraja endpoint.

        build_payload is called once per attempt so a resubmission after a
        stale token gets a fresh timestamp and password.
        """
        token = self.token_manager.acquire_token()
        resp = self._send(endpoint, build_payload(), token.value, context)

        if resp.status_code == 401:
            logger.info("MPesa [%s] bearer token rejected; renewing and retrying once", context)
            self.token_manager.invalidate(token)
            token = self.token_manager.acquire_token()
            resp = self._send(endpoint, build_payload(), token.value, context)

            if resp.status_code == 401:
                raise AuthenticationError(
                    f"MPesaProvider [{context}]: bearer token rejected twice",
                    upstream_status=resp.status_code,
                    upstream_body=resp.text,
                )

        return resp

    def _send(self, endpoint: str, payload: Dict[str, Any], token: str, context: str) -> requests.Response:
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type":  "application/json",
        }
        url = f"{self.credentials.base_url}{endpoint}"
        try:
            return self._session.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.Timeout as exc:
            raise TransientNetworkError(
                f"MPesaProvider [{context}]: request timed out – outcome unknown"
            ) from exc
        except requests.RequestException as exc:
            raise TransientNetworkError(f"MPesaProvider [{context}]: network error – {exc}") from exc

    def _handle_response(self, resp: requests.Response, context: str) -> Dict[str, Any]:
        """Parse a Daraja response, raising on HTTP errors and non-JSON bodies."""
        data = self._json_or_none(resp)

        logger.debug("MPesa [%s] HTTP %s", context, resp.status_code)

        if not resp.ok:
            error_msg = data.get("errorMessage") if isinstance(data, dict) else None
            error_msg = error_msg or resp.text[:300]
            logger.error("MPesa [%s] HTTP %s: %s", context, resp.status_code, resp.text)
            raise GatewayCommunicationError(
                f"MPesaProvider [{context}] HTTP {resp.status_code}: {error_msg}",
                upstream_status=resp.status_code,
                upstream_body=resp.text,
            )

        if not isinstance(data, dict):
            logger.error("MPesa [%s] malformed body: %s", context, resp.text)
            raise GatewayCommunicationError(
                f"MPesaProvider [{context}]: response is not a JSON object",
                upstream_status=resp.status_code,
                upstream_body=resp.text,
            )

        return data

    @staticmethod
    def _json_or_none(resp: requests.Response) -> Any:
        try:
            return resp.json()
        except ValueError:
            return None

    @staticmethod
    def _to_int(value: Any) -> Optional[int]:
        if value is None:
            return None
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
        if not number.is_integer():
            logger.warning("MPesa callback amount %r is not a whole number; ignoring it", value)
            return None
        return int(number)

    @staticmethod
    def _parse_transaction_date(value: Any) -> Optional[datetime]:
        """TransactionDate arrives as a YYYYMMDDHHmmss number"""
        if value is None:
            return None
        try:
            return datetime.strptime(str(value), TIMESTAMP_FORMAT)
        except ValueError:
            return None
