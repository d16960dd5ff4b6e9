"""
MercadoPago Payment Gateway Adapter

Preference-based checkout: a preference is created ahead of the payment and
the customer is redirected to MercadoPago's hosted page. Payments are then
read back by id, either on demand or when a webhook pings us.
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

import mercadopago
from mercadopago.config import RequestOptions

from payhub.core.logging import get_logger

from .base import (
    GatewayNotConfiguredError,
    MercadoPagoPayment,
    NotFoundError,
    Order,
    Payer,
    PaymentGateway,
    PaymentProvider,
    PreferenceResult,
    RefundResult,
    SimulatedPaymentRecord,
    UpstreamError,
)
from .money import to_decimal
from .simulated_store import SimulatedPaymentStore, generate_simulated_id

logger = get_logger(__name__)

PENDING = "pending"
APPROVED = "approved"


class MercadoPagoAdapter(PaymentGateway):
    """MercadoPago payment gateway adapter."""

    def __init__(
        self,
        access_token: Optional[str],
        client_url: str,
        notification_url: str,
        store: SimulatedPaymentStore,
        simulated: bool = False,
        currency: str = "COP",
        statement_descriptor: Optional[str] = None,
        timeout_seconds: float = 5.0,
        sdk: Optional[mercadopago.SDK] = None,
        **config
    ):
        """
        Initialize MercadoPago adapter.

        Args:
            access_token: MercadoPago secret access token, None when not configured
            client_url: Storefront base URL used for back URLs
            notification_url: Webhook URL MercadoPago notifies
            store: Simulated payment store
            simulated: Serve every call from the store
            currency: ISO currency of every line item
            statement_descriptor: Text on the customer's card statement
            timeout_seconds: Bound on every SDK call
            sdk: Preconfigured SDK instance (tests)
        """
        super().__init__(simulated=simulated, **config)
        self.client_url = client_url.rstrip("/")
        self.notification_url = notification_url
        self.store = store
        self.currency = currency
        self.statement_descriptor = statement_descriptor
        self.timeout_seconds = timeout_seconds
        self.sdk = sdk
        if self.sdk is None and access_token and not simulated:
            # one attempt per call; the worker thread outlives wait_for otherwise
            self.sdk = mercadopago.SDK(
                access_token,
                request_options=RequestOptions(connection_timeout=timeout_seconds, max_retries=0),
            )

    def _get_provider(self) -> PaymentProvider:
        return PaymentProvider.MERCADOPAGO

    def _require_sdk(self) -> mercadopago.SDK:
        if self.sdk is None:
            raise GatewayNotConfiguredError(
                "MercadoPago access token is not configured",
                provider=self.provider.value,
            )
        return self.sdk

    async def _call(self, operation: str, func: Callable[..., Dict[str, Any]], *args) -> Dict[str, Any]:
        """
        Run a blocking SDK call in a worker thread and unwrap its response.

        The SDK answers ``{"status": <http status>, "response": <body>}`` and
        does not raise on 4xx/5xx, so the status is checked here.
        """
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(func, *args),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.error("mercadopago.timeout", operation=operation)
            raise UpstreamError(
                f"MercadoPago {operation} timed out",
                provider=self.provider.value,
            ) from e
        except Exception as e:
            logger.error("mercadopago.request_failed", operation=operation, error=str(e))
            raise UpstreamError(
                f"MercadoPago {operation} failed: {e}",
                provider=self.provider.value,
            ) from e

        if not isinstance(result, dict) or not isinstance(result.get("response"), dict):
            logger.error("mercadopago.malformed_response", operation=operation)
            raise UpstreamError(
                f"MercadoPago {operation} returned a malformed response",
                provider=self.provider.value,
            )

        status = result.get("status")
        if not isinstance(status, int) or not 200 <= status < 300:
            logger.error(
                "mercadopago.rejected",
                operation=operation,
                status=status,
                response=result["response"],
            )
            raise UpstreamError(
                result["response"].get("message") or f"MercadoPago {operation} rejected with status {status}",
                provider=self.provider.value,
                details={"status": status, "response": result["response"]},
            )
        return result["response"]

    def _back_url(self, order: Order, outcome: str) -> str:
        return f"{self.client_url}/pedido/{order.tracking_number}?status={outcome}"

    def build_preference(self, order: Order, payer: Optional[Payer] = None) -> Dict[str, Any]:
        """Preference body sent to MercadoPago."""
        items = [
            {
                "id": str(item.id),
                "title": item.name,
                "description": item.description or item.name,
                "quantity": item.quantity,
                "unit_price": float(to_decimal(item.unit_price)),
                "currency_id": self.currency,
            }
            for item in order.items
        ]

        preference: Dict[str, Any] = {
            "items": items,
            "payer": {
                "name": (payer.name if payer else None) or order.customer_name,
                "email": (payer.email if payer else None) or order.customer_email or "",
                "phone": {"number": order.customer_phone},
            },
            "back_urls": {
                "success": self._back_url(order, "success"),
                "failure": self._back_url(order, "failure"),
                "pending": self._back_url(order, "pending"),
            },
            "auto_return": "approved",
            "notification_url": self.notification_url,
            "external_reference": str(order.id),
            "metadata": {
                "order_id": str(order.id),
                "tracking_number": order.tracking_number,
            },
        }
        if self.statement_descriptor:
            preference["statement_descriptor"] = self.statement_descriptor
        return preference

    async def create_preference(self, order: Order, payer: Optional[Payer] = None) -> PreferenceResult:
        """
        Create a checkout preference for an order.

        Args:
            order: Order to pay
            payer: Authenticated user, preferred over the order contact data

        Returns:
            PreferenceResult with the redirect URLs

        Raises:
            UpstreamError: If MercadoPago rejects the preference
        """
        if self.simulated:
            return await self._create_simulated_preference(order)

        sdk = self._require_sdk()
        response = await self._call(
            "preference.create",
            sdk.preference().create,
            self.build_preference(order, payer),
        )
        logger.info(
            "mercadopago.preference.created",
            preference_id=response.get("id"),
            tracking_number=order.tracking_number,
        )
        return PreferenceResult(
            success=True,
            provider=self.provider,
            preference_id=response.get("id"),
            init_point=response.get("init_point"),
            sandbox_init_point=response.get("sandbox_init_point"),
        )

    async def _create_simulated_preference(self, order: Order) -> PreferenceResult:
        preference_id = generate_simulated_id("mp_pref")
        query = urlencode({"preference": preference_id, "order": order.tracking_number})
        init_point = f"{self.client_url}/checkout/simulated?{query}"

        await self.store.save(
            SimulatedPaymentRecord(
                id=preference_id,
                order_id=str(order.id),
                tracking_number=order.tracking_number,
                amount=to_decimal(order.total),
                status=PENDING,
                provider=self.provider,
                created_at=datetime.now(timezone.utc),
            )
        )
        logger.info(
            "payment.simulated.created",
            provider=self.provider.value,
            payment_id=preference_id,
            tracking_number=order.tracking_number,
        )
        return PreferenceResult(
            success=True,
            provider=self.provider,
            preference_id=preference_id,
            init_point=init_point,
            sandbox_init_point=init_point,
            is_simulated=True,
        )

    async def get_payment(self, payment_id: str) -> MercadoPagoPayment:
        """
        Fetch a single payment.

        Raises:
            UpstreamError: If the lookup fails
            NotFoundError: If simulated and the id is unknown
        """
        if self.simulated:
            record = await self.store.get(payment_id)
            if record is None:
                raise NotFoundError(f"Simulated payment {payment_id} not found", provider=self.provider.value)
            return MercadoPagoPayment(
                id=record.id,
                status=record.status,
                amount=record.amount,
                external_reference=record.order_id,
                metadata={"tracking_number": record.tracking_number},
            )

        sdk = self._require_sdk()
        payment = await self._call("payment.get", sdk.payment().get, payment_id)
        if not payment.get("status"):
            logger.error("mercadopago.malformed_response", operation="payment.get", payment_id=payment_id)
            raise UpstreamError(
                "MercadoPago payment.get returned a payment without status",
                provider=self.provider.value,
            )
        amount = payment.get("transaction_amount")
        return MercadoPagoPayment(
            id=str(payment.get("id", payment_id)),
            status=payment.get("status"),
            status_detail=payment.get("status_detail"),
            amount=to_decimal(amount) if amount is not None else None,
            method=payment.get("payment_method_id"),
            external_reference=payment.get("external_reference"),
            metadata=payment.get("metadata") or {},
        )

    async def get_payment_status(self, payment_id: str) -> MercadoPagoPayment:
        return await self.get_payment(payment_id)

    async def refund(self, payment_id: str, amount: Optional[Decimal] = None) -> RefundResult:
        """
        Refund a payment; partial when ``amount`` is given.

        Raises:
            UpstreamError: If MercadoPago rejects the refund
        """
        if self.simulated:
            if await self.store.get(payment_id) is None:
                raise NotFoundError(f"Simulated payment {payment_id} not found", provider=self.provider.value)
            return RefundResult(
                success=True,
                provider=self.provider,
                status=APPROVED,
                refund_id=generate_simulated_id("mp_refund"),
            )

        sdk = self._require_sdk()
        body = {"amount": float(to_decimal(amount))} if amount is not None else {}
        refund = await self._call("refund.create", sdk.refund().create, payment_id, body)
        logger.info("mercadopago.refund.created", payment_id=payment_id, refund_id=refund.get("id"))
        return RefundResult(
            success=True,
            provider=self.provider,
            status=refund.get("status"),
            refund_id=str(refund["id"]) if refund.get("id") is not None else None,
        )
