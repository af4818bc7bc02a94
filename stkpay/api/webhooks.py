"""
Webhook API Endpoints
Handles STK Push result callbacks from Safaricom
"""

from flask import Blueprint, request, jsonify

from stkpay.extensions import stk_push
from stkpay.utils.logger import get_logger

webhooks_bp = Blueprint('webhooks', __name__)
logger = get_logger(__name__)

# Daraja's expected acknowledgment body
_ACK = {'ResultCode': 0, 'ResultDesc': 'Accepted'}


@webhooks_bp.route('/mpesa', methods=['POST'])
def receive_mpesa_callback():
    """
    Receive an STK Push result from M-Pesa

    Body:
        {"Body": {"stkCallback": {"MerchantRequestID": ..., "CheckoutRequestID": ...,
                                  "ResultCode": 0, "ResultDesc": ...,
                                  "CallbackMetadata": {"Item": [...]}}}}

    Always answers 200: Daraja redelivers on anything else, and the
    correlation tracker already treats redeliveries as no-ops.
    """
    payload = request.get_json(silent=True)
    if payload is None:
        logger.error(f'Unparseable M-Pesa callback body: {request.get_data(as_text=True)[:500]!r}')
        return jsonify(_ACK), 200

    try:
        result = stk_push.webhooks.process_callback(payload)
        logger.info(f'M-Pesa callback {result.get("checkout_request_id", "?")}: {result["status"]}')
    except Exception as e:
        logger.exception(f'M-Pesa callback handling failed: {str(e)}')

    return jsonify(_ACK), 200
