"""
Payment Gateway Base Classes and Interfaces

Defines the domain types, error taxonomy and the contract shared by the
MercadoPago and Wompi adapters.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class PaymentProvider(str, Enum):
    """Closed set of payment providers."""
    MERCADOPAGO = "mercadopago"
    WOMPI = "wompi"
    CASH = "cash"


class CheckoutMethod(str, Enum):
    """Payment methods a customer can pick at checkout."""
    MERCADOPAGO = "mercadopago"
    CARD_MP = "card_mp"
    PSE = "pse"
    NEQUI = "nequi"
    CARD = "card"
    CASH = "cash"


class WompiPaymentMethod(str, Enum):
    """Wompi payment method tags."""
    PSE = "PSE"
    NEQUI = "NEQUI"
    CARD = "CARD"


class CanonicalStatus(str, Enum):
    """Provider-independent payment status."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


@dataclass
class OrderItem:
    """Line item of an order."""
    id: Union[int, str]
    name: str
    quantity: int
    unit_price: Decimal
    description: Optional[str] = None


@dataclass
class Order:
    """Order being paid. Currency is always the configured one (COP)."""
    id: Union[int, str]
    tracking_number: str
    total: Decimal
    items: List[OrderItem] = field(default_factory=list)
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None


@dataclass
class Payer:
    """Authenticated user paying for the order."""
    name: Optional[str] = None
    email: Optional[str] = None


@dataclass
class AdditionalPaymentData:
    """Method specific inputs collected at checkout."""
    email: Optional[str] = None
    # PSE: 0 natural person, 1 legal entity
    user_type: int = 0
    document_type: str = "CC"
    document_number: Optional[str] = None
    bank_code: Optional[str] = None
    # NEQUI
    phone_number: Optional[str] = None
    # CARD
    card_token: Optional[str] = None
    installments: int = 1


@dataclass
class PaymentResult:
    """Result of a payment creation."""
    success: bool
    provider: PaymentProvider
    status: Optional[str] = None
    is_simulated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PreferenceResult(PaymentResult):
    """MercadoPago checkout preference."""
    preference_id: Optional[str] = None
    init_point: Optional[str] = None
    sandbox_init_point: Optional[str] = None


@dataclass
class TransactionResult(PaymentResult):
    """Wompi direct transaction."""
    transaction_id: Optional[str] = None
    redirect_url: Optional[str] = None
    reference: Optional[str] = None


@dataclass
class CashResult(PaymentResult):
    """Cash on delivery, no gateway involved."""
    message: Optional[str] = None


@dataclass
class MercadoPagoPayment:
    """Payment details as reported by MercadoPago."""
    id: str
    status: str
    amount: Optional[Decimal] = None
    status_detail: Optional[str] = None
    method: Optional[str] = None
    external_reference: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class WompiTransaction:
    """Transaction details as reported by Wompi, amount in major units."""
    id: str
    status: str
    amount: Optional[Decimal] = None
    reference: Optional[str] = None
    payment_method: Optional[str] = None
    created_at: Optional[str] = None
    finalized_at: Optional[str] = None


@dataclass
class RefundResult:
    """Result of a refund or void."""
    success: bool
    provider: PaymentProvider
    status: Optional[str] = None
    refund_id: Optional[str] = None


@dataclass
class Bank:
    """Financial institution available for PSE."""
    code: str
    name: str


@dataclass
class WebhookEvent:
    """Canonical event produced from a provider webhook."""
    provider: PaymentProvider
    payment_id: str
    order_id: Optional[str]
    status: CanonicalStatus
    amount: Optional[Decimal]
    raw_status: Optional[str]


@dataclass
class SimulatedPaymentRecord:
    """Fake payment kept while running without gateway credentials."""
    id: str
    order_id: str
    tracking_number: str
    amount: Decimal
    status: str
    provider: PaymentProvider
    created_at: datetime
    payment_method: Optional[str] = None
    finalized_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "tracking_number": self.tracking_number,
            "amount": str(self.amount),
            "status": self.status,
            "provider": self.provider.value,
            "payment_method": self.payment_method,
            "created_at": self.created_at.isoformat(),
            "finalized_at": self.finalized_at.isoformat() if self.finalized_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SimulatedPaymentRecord":
        return cls(
            id=data["id"],
            order_id=data["order_id"],
            tracking_number=data["tracking_number"],
            amount=Decimal(data["amount"]),
            status=data["status"],
            provider=PaymentProvider(data["provider"]),
            payment_method=data.get("payment_method"),
            created_at=datetime.fromisoformat(data["created_at"]),
            finalized_at=datetime.fromisoformat(data["finalized_at"]) if data.get("finalized_at") else None,
        )


@dataclass
class SimulatedConfirmation:
    """Outcome of confirming a simulated payment."""
    success: bool
    payment_id: str
    order_id: str
    tracking_number: str
    status: CanonicalStatus
    provider: PaymentProvider
    finalized_at: Optional[datetime] = None


class PaymentError(Exception):
    """Base class for payment orchestration errors."""

    error_code = "payment_error"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        provider: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.error_message = message
        self.error_code = error_code or self.error_code
        self.provider = provider
        self.details = details or {}


class UpstreamError(PaymentError):
    """A call to a payment provider failed (network, non-2xx, malformed body)."""
    error_code = "upstream_error"


class UnsupportedMethodError(PaymentError):
    """The requested checkout method is not recognized."""
    error_code = "unsupported_method"


class UnsupportedProviderError(PaymentError):
    """The requested provider is not recognized for the operation."""
    error_code = "unsupported_provider"


class NotSimulatedError(PaymentError):
    """A simulated-only operation was invoked with live gateways."""
    error_code = "not_simulated"


class NotFoundError(PaymentError):
    """The simulated payment id is unknown."""
    error_code = "not_found"


class GatewayNotConfiguredError(PaymentError):
    """Real mode is active but this gateway has no credentials."""
    error_code = "gateway_not_configured"


class PaymentGateway(ABC):
    """Abstract base class for payment gateway adapters."""

    def __init__(self, simulated: bool = False, **config):
        """
        Initialize the gateway.

        Args:
            simulated: Serve every call from the simulated store
            **config: Adapter specific configuration
        """
        self.simulated = simulated
        self.config = config
        self.provider = self._get_provider()

    @abstractmethod
    def _get_provider(self) -> PaymentProvider:
        """Return the provider identifier."""
        pass

    @abstractmethod
    async def get_payment_status(self, payment_id: str) -> Union[MercadoPagoPayment, WompiTransaction]:
        """
        Get the provider view of a payment.

        Raises:
            UpstreamError: If the provider call fails
            NotFoundError: If simulated and the id is unknown
        """
        pass

    @abstractmethod
    async def refund(self, payment_id: str, amount: Optional[Decimal] = None) -> RefundResult:
        """
        Refund a payment, in full when ``amount`` is None.

        Raises:
            UpstreamError: If the provider rejects the refund
        """
        pass

    async def aclose(self) -> None:
        """Release network resources held by the adapter."""
        return None
