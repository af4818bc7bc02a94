from flask import Blueprint, current_app, request, jsonify
from marshmallow import ValidationError as SchemaValidationError

from stkpay.errors import AppError, ValidationError
from stkpay.extensions import stk_push
from stkpay.schemas.payment_schema import InitiatePaymentSchema, InitiationResultSchema
from stkpay.services.idempotency_service import idempotent
from stkpay.utils.logger import get_logger

payments_bp = Blueprint('payments', __name__)
logger = get_logger(__name__)

result_schema = InitiationResultSchema()


def _error_response(error: AppError):
    return jsonify(error.to_dict()), error.status_code


@payments_bp.route('/stkpush', methods=['POST'])
@idempotent()
def initiate_stk_push():
    """
    Prompt a payer's phone for an M-Pesa payment

    Headers:
        - Idempotency-Key: unique per payment attempt; reusing it replays the
          stored answer instead of prompting the payer again

    Body:
        {
            "phone": "254796022656",
            "amount": 100,
            "reference": "INV-1001",        // optional, max 12 chars
            "description": "Order 1001"     // optional, max 13 chars
        }

    Returns 201 with the gateway acknowledgment. The payment outcome arrives
    later through the callback; poll GET /<checkout_request_id> for it.
    """
    schema = InitiatePaymentSchema(country_code=current_app.config['MPESA_PHONE_COUNTRY_CODE'])

    try:
        intent = schema.load(request.get_json(silent=True) or {})
    except SchemaValidationError as e:
        field = next(iter(e.messages), None) if isinstance(e.messages, dict) else None
        return _error_response(ValidationError('Invalid payment request', field=field, details=e.messages))

    try:
        result = stk_push.initiator.initiate(intent)
    except AppError as e:
        return _error_response(e)

    return jsonify({
        'success': True,
        'data': result_schema.dump(result)
    }), 201


@payments_bp.route('/<checkout_request_id>', methods=['GET'])
def get_payment(checkout_request_id):
    """
    Get the tracked state of an STK Push

    Path Parameters:
        - checkout_request_id: CheckoutRequestID returned at initiation
    """
    correlation = stk_push.initiator.get_status(checkout_request_id)

    if correlation is None:
        return jsonify({
            'success': False,
            'error': 'Payment not found'
        }), 404

    return jsonify({
        'success': True,
        'data': correlation.to_dict()
    }), 200


@payments_bp.route('/<checkout_request_id>/query', methods=['POST'])
def query_payment(checkout_request_id):
    """
    Ask Daraja for the result of an STK Push

    A final answer resolves the tracked payment the same way a callback does.

    Path Parameters:
        - checkout_request_id: CheckoutRequestID returned at initiation
    """
    try:
        data = stk_push.initiator.query_status(checkout_request_id)
    except AppError as e:
        return _error_response(e)

    return jsonify({
        'success': True,
        'data': data
    }), 200
