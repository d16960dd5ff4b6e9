from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from payhub.integrations.payment_gateways.base import (
    AdditionalPaymentData,
    CanonicalStatus,
    Order,
    OrderItem,
    Payer,
    PaymentProvider,
)


def _coerce_id(value):
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class OrderItemIn(BaseModel):
    id: int | str
    name: str = Field(min_length=1)
    description: str | None = None
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(ge=0)

    def to_domain(self) -> OrderItem:
        return OrderItem(
            id=self.id,
            name=self.name,
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
        )


class OrderIn(BaseModel):
    id: int | str
    tracking_number: str = Field(min_length=1, max_length=64)
    total: Decimal = Field(gt=0)
    items: list[OrderItemIn] = Field(default_factory=list)
    customer_name: str | None = None
    customer_email: EmailStr | None = None
    customer_phone: str | None = None

    def to_domain(self) -> Order:
        return Order(
            id=self.id,
            tracking_number=self.tracking_number,
            total=self.total,
            items=[item.to_domain() for item in self.items],
            customer_name=self.customer_name,
            customer_email=self.customer_email,
            customer_phone=self.customer_phone,
        )


class PayerIn(BaseModel):
    name: str | None = None
    email: EmailStr | None = None

    def to_domain(self) -> Payer:
        return Payer(name=self.name, email=self.email)


class AdditionalDataIn(BaseModel):
    email: EmailStr | None = None
    user_type: Literal[0, 1] = 0
    document_type: str = Field(default="CC", max_length=8)
    document_number: str | None = None
    bank_code: str | None = None
    phone_number: str | None = None
    card_token: str | None = None
    installments: int = Field(default=1, ge=1, le=36)

    def to_domain(self) -> AdditionalPaymentData:
        return AdditionalPaymentData(**self.model_dump())


class PaymentCreateRequest(BaseModel):
    order: OrderIn
    method: str
    additional_data: AdditionalDataIn | None = None
    user: PayerIn | None = None


class RefundRequest(BaseModel):
    amount: Decimal | None = Field(default=None, gt=0)


# Inbound webhook envelopes. Anything that fails validation is not an event.


class MercadoPagoWebhookData(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)

    @field_validator("id", mode="before")
    @classmethod
    def normalize_id(cls, value):
        return _coerce_id(value)


class MercadoPagoWebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["payment"]
    data: MercadoPagoWebhookData


class WompiWebhookTransaction(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)
    status: str
    amount_in_cents: int
    reference: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def normalize_id(cls, value):
        return _coerce_id(value)


class WompiWebhookData(BaseModel):
    model_config = ConfigDict(extra="allow")

    transaction: WompiWebhookTransaction


class WompiWebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    event: Literal["transaction.updated"]
    data: WompiWebhookData


# Responses. Amounts are Decimal and serialize as exact strings ("45000.00").


class ReadModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class PaymentResultRead(ReadModel):
    success: bool
    provider: PaymentProvider
    status: str | None = None
    is_simulated: bool = False
    # MercadoPago
    preference_id: str | None = None
    init_point: str | None = None
    sandbox_init_point: str | None = None
    # Wompi
    transaction_id: str | None = None
    redirect_url: str | None = None
    reference: str | None = None
    # cash
    message: str | None = None


class PaymentStatusRead(ReadModel):
    id: str
    status: str
    amount: Decimal | None = None
    status_detail: str | None = None
    method: str | None = None
    external_reference: str | None = None
    metadata: dict[str, Any] | None = None
    reference: str | None = None
    payment_method: str | None = None
    created_at: str | None = None
    finalized_at: str | None = None


class RefundRead(ReadModel):
    success: bool
    provider: PaymentProvider
    status: str | None = None
    refund_id: str | None = None


class BankRead(ReadModel):
    code: str
    name: str


class PaymentModeRead(BaseModel):
    simulated: bool


class WebhookEventRead(ReadModel):
    provider: PaymentProvider
    payment_id: str
    order_id: str | None
    status: CanonicalStatus
    amount: Decimal | None
    raw_status: str | None


class WebhookAck(BaseModel):
    received: bool = True
    event: WebhookEventRead | None = None


class SimulatedConfirmationRead(ReadModel):
    success: bool
    payment_id: str
    order_id: str
    tracking_number: str
    status: CanonicalStatus
    provider: PaymentProvider
    finalized_at: datetime | None = None


class SimulatedPaymentRead(ReadModel):
    id: str
    order_id: str
    tracking_number: str
    amount: Decimal
    status: str
    provider: PaymentProvider
    payment_method: str | None = None
    created_at: datetime
    finalized_at: datetime | None = None
