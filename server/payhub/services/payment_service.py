from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Mapping, Optional, Union

from pydantic import ValidationError
from redis.asyncio import Redis

from payhub.core.config import Settings
from payhub.core.logging import get_logger
from payhub.integrations.payment_gateways.base import (
    AdditionalPaymentData,
    Bank,
    CashResult,
    CheckoutMethod,
    MercadoPagoPayment,
    NotFoundError,
    NotSimulatedError,
    Order,
    Payer,
    PaymentProvider,
    PaymentResult,
    RefundResult,
    SimulatedConfirmation,
    SimulatedPaymentRecord,
    UnsupportedMethodError,
    UnsupportedProviderError,
    WebhookEvent,
    WompiPaymentMethod,
    WompiTransaction,
)
from payhub.integrations.payment_gateways.mercadopago_adapter import (
    APPROVED as MERCADOPAGO_APPROVED,
    MercadoPagoAdapter,
)
from payhub.integrations.payment_gateways.money import from_minor_units
from payhub.integrations.payment_gateways.simulated_store import (
    InMemorySimulatedPaymentStore,
    RedisSimulatedPaymentStore,
    SimulatedPaymentStore,
)
from payhub.integrations.payment_gateways.status import normalize_status
from payhub.integrations.payment_gateways.wompi_adapter import (
    APPROVED as WOMPI_APPROVED,
    WompiAdapter,
)
from payhub.schemas.payment import MercadoPagoWebhookPayload, WompiWebhookPayload

logger = get_logger(__name__)

CASH_MESSAGE = "Pago contra entrega"

WOMPI_METHODS = {
    CheckoutMethod.PSE: WompiPaymentMethod.PSE,
    CheckoutMethod.NEQUI: WompiPaymentMethod.NEQUI,
    CheckoutMethod.CARD: WompiPaymentMethod.CARD,
}

APPROVED_STATUS = {
    PaymentProvider.MERCADOPAGO: MERCADOPAGO_APPROVED,
    PaymentProvider.WOMPI: WOMPI_APPROVED,
}


def _checkout_method(method: Union[CheckoutMethod, str]) -> CheckoutMethod:
    try:
        return CheckoutMethod(method)
    except ValueError as e:
        raise UnsupportedMethodError(f"Payment method {method} not supported") from e


def _provider(provider: Union[PaymentProvider, str]) -> PaymentProvider:
    try:
        return PaymentProvider(provider)
    except ValueError as e:
        raise UnsupportedProviderError(f"Provider {provider} not supported", provider=str(provider)) from e


class PaymentService:
    """
    Provider-agnostic entry point for payments.

    Routes checkout methods and provider names to the MercadoPago or Wompi
    adapter and turns provider webhooks into canonical events. ``simulated``
    is fixed at construction; in simulated mode no call leaves the process.
    """

    def __init__(
        self,
        mercadopago: MercadoPagoAdapter,
        wompi: WompiAdapter,
        store: SimulatedPaymentStore,
        simulated: bool = False,
    ) -> None:
        if mercadopago.simulated != simulated or wompi.simulated != simulated:
            raise ValueError("adapters must share the service simulated mode")
        self.mercadopago = mercadopago
        self.wompi = wompi
        self.store = store
        self._simulated = simulated

    @property
    def is_simulated_mode(self) -> bool:
        return self._simulated

    async def create_payment(
        self,
        order: Order,
        method: Union[CheckoutMethod, str],
        additional_data: Optional[AdditionalPaymentData] = None,
        payer: Optional[Payer] = None,
    ) -> PaymentResult:
        """
        Start a payment for an order with the chosen checkout method.

        Raises:
            UnsupportedMethodError: If the method is unknown
            UpstreamError: If the provider call fails
        """
        checkout_method = _checkout_method(method)
        logger.info(
            "payment.create",
            method=checkout_method.value,
            tracking_number=order.tracking_number,
            simulated=self._simulated,
        )

        if checkout_method in (CheckoutMethod.MERCADOPAGO, CheckoutMethod.CARD_MP):
            return await self.mercadopago.create_preference(order, payer)
        if checkout_method in WOMPI_METHODS:
            return await self.wompi.create_transaction(order, WOMPI_METHODS[checkout_method], additional_data)
        if checkout_method is CheckoutMethod.CASH:
            return CashResult(
                success=True,
                provider=PaymentProvider.CASH,
                status="pending",
                message=CASH_MESSAGE,
            )
        raise UnsupportedMethodError(f"Payment method {method} not supported")

    async def get_payment_status(
        self,
        provider: Union[PaymentProvider, str],
        payment_id: str,
    ) -> Union[MercadoPagoPayment, WompiTransaction]:
        resolved = _provider(provider)
        if resolved is PaymentProvider.MERCADOPAGO:
            return await self.mercadopago.get_payment(payment_id)
        if resolved is PaymentProvider.WOMPI:
            return await self.wompi.get_transaction(payment_id)
        raise UnsupportedProviderError(f"Provider {provider} not supported", provider=resolved.value)

    async def refund(
        self,
        provider: Union[PaymentProvider, str],
        payment_id: str,
        amount: Optional[Decimal] = None,
    ) -> RefundResult:
        resolved = _provider(provider)
        logger.info("payment.refund", provider=resolved.value, payment_id=payment_id, amount=amount)
        if resolved is PaymentProvider.MERCADOPAGO:
            return await self.mercadopago.refund(payment_id, amount)
        if resolved is PaymentProvider.WOMPI:
            return await self.wompi.refund(payment_id, amount)
        raise UnsupportedProviderError(f"Provider {provider} not supported", provider=resolved.value)

    async def list_banks(self) -> List[Bank]:
        return await self.wompi.list_banks()

    async def process_webhook(
        self,
        provider: Union[PaymentProvider, str],
        payload: Mapping[str, Any],
    ) -> Optional[WebhookEvent]:
        """
        Convert a provider notification into a canonical event.

        MercadoPago only pings that a payment changed, so the payment is read
        back before normalizing. Wompi sends the whole transaction inline.

        Returns:
            WebhookEvent, or None when the payload is not an event we act on

        Raises:
            UnsupportedProviderError: If the provider name is unknown
            UpstreamError: If the MercadoPago read-back fails
        """
        resolved = _provider(provider)
        if resolved is PaymentProvider.MERCADOPAGO:
            return await self._process_mercadopago_webhook(payload)
        if resolved is PaymentProvider.WOMPI:
            return self._process_wompi_webhook(payload)
        if resolved is PaymentProvider.CASH:
            return None
        raise UnsupportedProviderError(f"Provider {provider} not supported", provider=resolved.value)

    async def _process_mercadopago_webhook(self, payload: Mapping[str, Any]) -> Optional[WebhookEvent]:
        try:
            notification = MercadoPagoWebhookPayload.model_validate(payload)
        except ValidationError:
            logger.info("webhook.ignored", provider="mercadopago", notification_type=_get(payload, "type"))
            return None

        payment = await self.mercadopago.get_payment(notification.data.id)
        event = WebhookEvent(
            provider=PaymentProvider.MERCADOPAGO,
            payment_id=payment.id,
            order_id=payment.external_reference,
            status=normalize_status(payment.status, PaymentProvider.MERCADOPAGO),
            amount=payment.amount,
            raw_status=payment.status,
        )
        logger.info(
            "webhook.processed",
            provider="mercadopago",
            payment_id=event.payment_id,
            status=event.status.value,
        )
        return event

    def _process_wompi_webhook(self, payload: Mapping[str, Any]) -> Optional[WebhookEvent]:
        try:
            notification = WompiWebhookPayload.model_validate(payload)
        except ValidationError:
            logger.info("webhook.ignored", provider="wompi", wompi_event=_get(payload, "event"))
            return None

        transaction = notification.data.transaction
        event = WebhookEvent(
            provider=PaymentProvider.WOMPI,
            payment_id=transaction.id,
            order_id=transaction.reference,
            status=normalize_status(transaction.status, PaymentProvider.WOMPI),
            amount=from_minor_units(transaction.amount_in_cents),
            raw_status=transaction.status,
        )
        logger.info(
            "webhook.processed",
            provider="wompi",
            payment_id=event.payment_id,
            status=event.status.value,
        )
        return event

    async def confirm_simulated_payment(self, payment_id: str) -> SimulatedConfirmation:
        """
        Approve a simulated payment.

        The first call moves the record to ``approved``/``APPROVED`` and stamps
        ``finalized_at``. Later calls return the same confirmation unchanged.

        Raises:
            NotSimulatedError: If live gateways are configured
            NotFoundError: If the id is unknown
        """
        if not self._simulated:
            raise NotSimulatedError("Not in simulated mode")

        record = await self.store.get(payment_id)
        if record is None:
            raise NotFoundError(f"Simulated payment {payment_id} not found")

        record = await self.store.finalize(
            payment_id,
            APPROVED_STATUS[record.provider],
            datetime.now(timezone.utc),
        )
        if record is None:
            raise NotFoundError(f"Simulated payment {payment_id} not found")

        logger.info(
            "payment.simulated.confirmed",
            payment_id=payment_id,
            provider=record.provider.value,
            tracking_number=record.tracking_number,
        )
        return SimulatedConfirmation(
            success=True,
            payment_id=record.id,
            order_id=record.order_id,
            tracking_number=record.tracking_number,
            status=normalize_status(record.status, record.provider),
            provider=record.provider,
            finalized_at=record.finalized_at,
        )

    async def get_simulated_payment(self, payment_id: str) -> SimulatedPaymentRecord:
        if not self._simulated:
            raise NotSimulatedError("Not in simulated mode")
        record = await self.store.get(payment_id)
        if record is None:
            raise NotFoundError(f"Simulated payment {payment_id} not found")
        return record

    async def aclose(self) -> None:
        await self.mercadopago.aclose()
        await self.wompi.aclose()


def _get(payload: Any, key: str) -> Any:
    return payload.get(key) if isinstance(payload, Mapping) else None


def build_payment_service(
    settings: Settings,
    redis_client: Optional[Redis] = None,
    store: Optional[SimulatedPaymentStore] = None,
) -> PaymentService:
    """
    Wire a PaymentService from settings.

    The simulated flag is resolved once here and injected everywhere.
    """
    simulated = settings.simulated_mode

    if store is None:
        if settings.simulated_store == "redis":
            client = redis_client or Redis.from_url(settings.redis_url)
            store = RedisSimulatedPaymentStore(client, ttl_seconds=settings.simulated_record_ttl_seconds)
        else:
            store = InMemorySimulatedPaymentStore()

    mercadopago = MercadoPagoAdapter(
        access_token=settings.mercadopago_access_token,
        client_url=settings.client_url,
        notification_url=f"{settings.webhook_base_url}/mercadopago",
        store=store,
        simulated=simulated,
        currency=settings.currency,
        statement_descriptor=settings.statement_descriptor,
        timeout_seconds=settings.http_timeout_seconds,
    )
    wompi = WompiAdapter(
        public_key=settings.wompi_public_key,
        private_key=settings.wompi_private_key,
        base_url=settings.wompi_api_url,
        client_url=settings.client_url,
        store=store,
        simulated=simulated,
        currency=settings.currency,
        merchant_name=settings.merchant_name,
        timeout_seconds=settings.http_timeout_seconds,
    )

    logger.info(
        "payment_service.initialized",
        simulated=simulated,
        store=type(store).__name__,
        environment=settings.environment,
    )
    return PaymentService(mercadopago=mercadopago, wompi=wompi, store=store, simulated=simulated)
