from payhub.schemas.payment import (
    AdditionalDataIn,
    MercadoPagoWebhookPayload,
    OrderIn,
    OrderItemIn,
    PayerIn,
    PaymentCreateRequest,
    RefundRequest,
    WompiWebhookPayload,
)

__all__ = [
    "AdditionalDataIn",
    "MercadoPagoWebhookPayload",
    "OrderIn",
    "OrderItemIn",
    "PayerIn",
    "PaymentCreateRequest",
    "RefundRequest",
    "WompiWebhookPayload",
]
