from marshmallow import EXCLUDE, Schema, fields, post_load, pre_load

from stkpay.models import PaymentIntent
from stkpay.models.payment import DEFAULT_DESCRIPTION, DEFAULT_REFERENCE
from stkpay.utils.validators import DEFAULT_COUNTRY_CODE, sanitize_phone_number


class InitiatePaymentSchema(Schema):
    """STK Push initiation request"""
    class Meta:
        unknown = EXCLUDE

    phone = fields.Str(required=True)
    amount = fields.Int(required=True, strict=True)
    reference = fields.Str(load_default=DEFAULT_REFERENCE)
    description = fields.Str(load_default=DEFAULT_DESCRIPTION)

    def __init__(self, *args, country_code=DEFAULT_COUNTRY_CODE, **kwargs):
        super().__init__(*args, **kwargs)
        self.country_code = country_code

    @pre_load
    def normalise_phone(self, data, **kwargs):
        if isinstance(data, dict) and isinstance(data.get('phone'), str):
            data = dict(data)
            data['phone'] = sanitize_phone_number(data['phone'], self.country_code)
        return data

    @post_load
    def make_intent(self, data, **kwargs):
        return PaymentIntent(**data)


class InitiationResultSchema(Schema):
    """STK Push acknowledgment response schema"""
    merchant_request_id = fields.Str(dump_only=True)
    checkout_request_id = fields.Str(dump_only=True)
    response_code = fields.Str(dump_only=True)
    response_description = fields.Str(dump_only=True)
    customer_message = fields.Str(dump_only=True, allow_none=True)
