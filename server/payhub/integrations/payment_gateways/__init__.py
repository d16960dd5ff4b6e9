"""
Payment gateway integration modules

Provides the MercadoPago and Wompi adapters behind a consistent interface,
the simulated payment store and canonical status normalization.
"""

from .base import (
    AdditionalPaymentData,
    Bank,
    CanonicalStatus,
    CashResult,
    CheckoutMethod,
    GatewayNotConfiguredError,
    MercadoPagoPayment,
    NotFoundError,
    NotSimulatedError,
    Order,
    OrderItem,
    Payer,
    PaymentError,
    PaymentGateway,
    PaymentProvider,
    PaymentResult,
    PreferenceResult,
    RefundResult,
    SimulatedConfirmation,
    SimulatedPaymentRecord,
    TransactionResult,
    UnsupportedMethodError,
    UnsupportedProviderError,
    UpstreamError,
    WebhookEvent,
    WompiPaymentMethod,
    WompiTransaction,
)
from .status import normalize_status

__all__ = [
    "AdditionalPaymentData",
    "Bank",
    "CanonicalStatus",
    "CashResult",
    "CheckoutMethod",
    "GatewayNotConfiguredError",
    "MercadoPagoPayment",
    "NotFoundError",
    "NotSimulatedError",
    "Order",
    "OrderItem",
    "Payer",
    "PaymentError",
    "PaymentGateway",
    "PaymentProvider",
    "PaymentResult",
    "PreferenceResult",
    "RefundResult",
    "SimulatedConfirmation",
    "SimulatedPaymentRecord",
    "TransactionResult",
    "UnsupportedMethodError",
    "UnsupportedProviderError",
    "UpstreamError",
    "WebhookEvent",
    "WompiPaymentMethod",
    "WompiTransaction",
    "normalize_status",
]
