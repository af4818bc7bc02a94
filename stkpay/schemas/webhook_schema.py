"""
Webhook Validation Schemas
"""

from marshmallow import EXCLUDE, Schema, fields, pre_load


class CallbackItemSchema(Schema):
    """One CallbackMetadata.Item entry"""
    class Meta:
        unknown = EXCLUDE

    Name = fields.Str(required=True)
    Value = fields.Raw(required=False, allow_none=True)


class CallbackMetadataSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    Item = fields.List(fields.Nested(CallbackItemSchema), load_default=list)


class StkCallbackSchema(Schema):
    """Body.stkCallback of a Daraja STK Push result"""
    class Meta:
        unknown = EXCLUDE

    MerchantRequestID = fields.Str(required=False, allow_none=True)
    CheckoutRequestID = fields.Str(required=True)
    ResultCode = fields.Int(required=True)
    ResultDesc = fields.Str(load_default='')
    CallbackMetadata = fields.Nested(CallbackMetadataSchema, required=False, allow_none=True)


class MPesaCallbackSchema(Schema):
    """
    M-Pesa callback envelope.

    Accepts the documented {"Body": {"stkCallback": {...}}} shape and a flat
    callback object carrying CheckoutRequestID / ResultCode directly.
    """
    class Meta:
        unknown = EXCLUDE

    stkCallback = fields.Nested(StkCallbackSchema, required=True)

    @pre_load
    def unwrap_body(self, data, **kwargs):
        if not isinstance(data, dict):
            return data
        body = data.get('Body')
        if isinstance(body, dict) and 'stkCallback' in body:
            return {'stkCallback': body['stkCallback']}
        if 'CheckoutRequestID' in data:
            return {'stkCallback': data}
        return data


class StkQueryResponseSchema(Schema):
    """Answer to /mpesa/stkpushquery/v1/query"""
    class Meta:
        unknown = EXCLUDE

    ResponseCode = fields.Str(required=False)
    ResponseDescription = fields.Str(required=False)
    MerchantRequestID = fields.Str(required=False, allow_none=True)
    CheckoutRequestID = fields.Str(required=True)
    ResultCode = fields.Int(required=True)
    ResultDesc = fields.Str(load_default='')
