"""
Wompi Payment Gateway Adapter

Direct transactions for Colombia: PSE bank transfers, Nequi wallet and
tokenized cards. Every transaction needs a fresh acceptance token from the
merchant endpoint before it can be created.

Amounts travel as integer cents (``amount_in_cents``); see ``money``.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlencode

import httpx

from payhub.core.logging import get_logger

from .base import (
    AdditionalPaymentData,
    Bank,
    GatewayNotConfiguredError,
    NotFoundError,
    Order,
    PaymentGateway,
    PaymentProvider,
    RefundResult,
    SimulatedPaymentRecord,
    TransactionResult,
    UnsupportedMethodError,
    UpstreamError,
    WompiPaymentMethod,
    WompiTransaction,
)
from .money import from_minor_units, to_decimal, to_minor_units
from .simulated_store import SimulatedPaymentStore, generate_simulated_id

logger = get_logger(__name__)

PENDING = "PENDING"
APPROVED = "APPROVED"
VOIDED = "VOIDED"

# Wompi sandbox institutions
SANDBOX_BANKS = [
    Bank(code="1", name="Banco que aprueba"),
    Bank(code="2", name="Banco que rechaza"),
]


class WompiAdapter(PaymentGateway):
    """Wompi payment gateway adapter."""

    def __init__(
        self,
        public_key: Optional[str],
        private_key: Optional[str],
        base_url: str,
        client_url: str,
        store: SimulatedPaymentStore,
        simulated: bool = False,
        currency: str = "COP",
        merchant_name: str = "",
        timeout_seconds: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
        **config
    ):
        """
        Initialize Wompi adapter.

        Args:
            public_key: Wompi public key (merchant lookup, bank list)
            private_key: Wompi private key (transactions)
            base_url: Sandbox or production API URL
            client_url: Storefront base URL used for redirects
            store: Simulated payment store
            simulated: Serve every call from the store
            currency: ISO currency of every transaction
            merchant_name: Shown in the PSE payment description
            timeout_seconds: Bound on every HTTP call
            client: Preconfigured HTTP client (tests)
        """
        super().__init__(simulated=simulated, **config)
        self.public_key = public_key
        self.private_key = private_key
        self.base_url = base_url.rstrip("/")
        self.client_url = client_url.rstrip("/")
        self.store = store
        self.currency = currency
        self.merchant_name = merchant_name
        self.timeout_seconds = timeout_seconds
        self._client = client

    def _get_provider(self) -> PaymentProvider:
        return PaymentProvider.WOMPI

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout_seconds),
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _auth_headers(self, key: Optional[str], key_name: str) -> Dict[str, str]:
        if not key:
            raise GatewayNotConfiguredError(
                f"Wompi {key_name} is not configured",
                provider=self.provider.value,
            )
        return {"Authorization": f"Bearer {key}"}

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        headers: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Perform a call and return the ``data`` member of the body."""
        try:
            response = await self.client.request(method, path, headers=headers, json=json)
        except httpx.TimeoutException as e:
            logger.error("wompi.timeout", operation=operation, path=path)
            raise UpstreamError(f"Wompi {operation} timed out", provider=self.provider.value) from e
        except httpx.HTTPError as e:
            logger.error("wompi.request_failed", operation=operation, path=path, error=str(e))
            raise UpstreamError(f"Wompi {operation} failed: {e}", provider=self.provider.value) from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_error:
            logger.error(
                "wompi.rejected",
                operation=operation,
                status=response.status_code,
                response=body,
            )
            raise UpstreamError(
                f"Wompi {operation} rejected with status {response.status_code}",
                provider=self.provider.value,
                details={"status": response.status_code, "response": body},
            )

        if not isinstance(body, dict) or "data" not in body:
            logger.error("wompi.malformed_response", operation=operation, status=response.status_code)
            raise UpstreamError(
                f"Wompi {operation} returned a malformed response",
                provider=self.provider.value,
            )
        return body["data"]

    def _require_fields(self, operation: str, data: Any, *fields: str) -> Dict[str, Any]:
        if not isinstance(data, dict) or any(data.get(name) is None for name in fields):
            logger.error("wompi.malformed_response", operation=operation, missing=list(fields))
            raise UpstreamError(
                f"Wompi {operation} returned a malformed response",
                provider=self.provider.value,
                details={"response": data},
            )
        return data

    async def get_acceptance_token(self) -> str:
        """
        Fetch the merchant acceptance token required by every transaction.

        Raises:
            UpstreamError: If the token cannot be obtained
        """
        if not self.public_key:
            raise GatewayNotConfiguredError("Wompi public key is not configured", provider=self.provider.value)

        merchant = await self._request("merchant.get", "GET", f"/merchants/{self.public_key}")
        try:
            token = merchant["presigned_acceptance"]["acceptance_token"]
        except (KeyError, TypeError) as e:
            logger.error("wompi.acceptance_token.missing")
            raise UpstreamError("Wompi merchant response has no acceptance token", provider=self.provider.value) from e
        if not token:
            raise UpstreamError("Wompi returned an empty acceptance token", provider=self.provider.value)
        return token

    def build_payment_method(
        self,
        order: Order,
        method: WompiPaymentMethod,
        data: AdditionalPaymentData,
    ) -> Dict[str, Any]:
        """Method specific ``payment_method`` member of the transaction."""
        if method is WompiPaymentMethod.PSE:
            return {
                "type": method.value,
                "user_type": data.user_type,
                "user_legal_id_type": data.document_type,
                "user_legal_id": data.document_number,
                "financial_institution_code": data.bank_code,
                "payment_description": f"Pedido {self.merchant_name} #{order.tracking_number}",
            }
        if method is WompiPaymentMethod.NEQUI:
            return {
                "type": method.value,
                "phone_number": data.phone_number or order.customer_phone,
            }
        if method is WompiPaymentMethod.CARD:
            return {
                "type": method.value,
                "token": data.card_token,
                "installments": data.installments or 1,
            }
        raise UnsupportedMethodError(f"Wompi payment method {method} not supported", provider=self.provider.value)

    def build_transaction(
        self,
        order: Order,
        method: WompiPaymentMethod,
        data: AdditionalPaymentData,
        acceptance_token: str,
    ) -> Dict[str, Any]:
        return {
            "amount_in_cents": to_minor_units(order.total),
            "currency": self.currency,
            "customer_email": data.email or order.customer_email,
            "payment_method": self.build_payment_method(order, method, data),
            "reference": order.tracking_number,
            "acceptance_token": acceptance_token,
            "redirect_url": f"{self.client_url}/pedido/{order.tracking_number}",
        }

    async def create_transaction(
        self,
        order: Order,
        method: Union[WompiPaymentMethod, str],
        additional_data: Optional[AdditionalPaymentData] = None,
    ) -> TransactionResult:
        """
        Create a PSE, NEQUI or CARD transaction.

        Args:
            order: Order to pay
            method: Wompi payment method tag
            additional_data: Method specific inputs

        Returns:
            TransactionResult with the transaction id and, for async methods,
            the URL the customer must visit

        Raises:
            UnsupportedMethodError: If the method tag is unknown
            UpstreamError: If the acceptance token or the transaction fails
        """
        try:
            method = WompiPaymentMethod(method)
        except ValueError as e:
            raise UnsupportedMethodError(
                f"Wompi payment method {method} not supported",
                provider=self.provider.value,
            ) from e
        data = additional_data or AdditionalPaymentData()

        if self.simulated:
            return await self._create_simulated_transaction(order, method)

        headers = self._auth_headers(self.private_key, "private key")
        acceptance_token = await self.get_acceptance_token()
        transaction = await self._request(
            "transaction.create",
            "POST",
            "/transactions",
            headers=headers,
            json=self.build_transaction(order, method, data, acceptance_token),
        )
        transaction = self._require_fields("transaction.create", transaction, "id", "status")

        extra = (transaction.get("payment_method") or {}).get("extra") or {}
        logger.info(
            "wompi.transaction.created",
            transaction_id=transaction.get("id"),
            method=method.value,
            status=transaction.get("status"),
            reference=transaction.get("reference"),
        )
        return TransactionResult(
            success=True,
            provider=self.provider,
            status=transaction.get("status"),
            transaction_id=str(transaction["id"]),
            redirect_url=extra.get("async_payment_url"),
            reference=transaction.get("reference"),
        )

    async def _create_simulated_transaction(self, order: Order, method: WompiPaymentMethod) -> TransactionResult:
        transaction_id = generate_simulated_id("wompi_tx")
        query = urlencode({
            "transaction": transaction_id,
            "order": order.tracking_number,
            "method": method.value,
        })

        await self.store.save(
            SimulatedPaymentRecord(
                id=transaction_id,
                order_id=str(order.id),
                tracking_number=order.tracking_number,
                amount=to_decimal(order.total),
                status=PENDING,
                provider=self.provider,
                payment_method=method.value,
                created_at=datetime.now(timezone.utc),
            )
        )
        logger.info(
            "payment.simulated.created",
            provider=self.provider.value,
            payment_id=transaction_id,
            method=method.value,
            tracking_number=order.tracking_number,
        )
        return TransactionResult(
            success=True,
            provider=self.provider,
            status=PENDING,
            transaction_id=transaction_id,
            redirect_url=f"{self.client_url}/checkout/simulated?{query}",
            reference=order.tracking_number,
            is_simulated=True,
        )

    async def get_transaction(self, transaction_id: str) -> WompiTransaction:
        """
        Fetch a transaction, amount converted back to major units.

        Raises:
            UpstreamError: If the lookup fails
            NotFoundError: If simulated and the id is unknown
        """
        if self.simulated:
            record = await self.store.get(transaction_id)
            if record is None:
                raise NotFoundError(f"Simulated payment {transaction_id} not found", provider=self.provider.value)
            return WompiTransaction(
                id=record.id,
                status=record.status,
                amount=record.amount,
                reference=record.tracking_number,
                payment_method=record.payment_method,
                created_at=record.created_at.isoformat(),
                finalized_at=record.finalized_at.isoformat() if record.finalized_at else None,
            )

        headers = self._auth_headers(self.private_key, "private key")
        transaction = await self._request(
            "transaction.get",
            "GET",
            f"/transactions/{transaction_id}",
            headers=headers,
        )
        transaction = self._require_fields("transaction.get", transaction, "id", "status")
        amount_in_cents = transaction.get("amount_in_cents")
        return WompiTransaction(
            id=str(transaction["id"]),
            status=transaction["status"],
            amount=from_minor_units(amount_in_cents) if amount_in_cents is not None else None,
            reference=transaction.get("reference"),
            payment_method=transaction.get("payment_method_type"),
            created_at=transaction.get("created_at"),
            finalized_at=transaction.get("finalized_at"),
        )

    async def get_payment_status(self, payment_id: str) -> WompiTransaction:
        return await self.get_transaction(payment_id)

    async def list_banks(self) -> List[Bank]:
        """Financial institutions available for PSE."""
        if self.simulated:
            return list(SANDBOX_BANKS)

        headers = self._auth_headers(self.public_key, "public key")
        institutions = await self._request(
            "financial_institutions.list",
            "GET",
            "/pse/financial_institutions",
            headers=headers,
        )
        if not isinstance(institutions, list):
            raise UpstreamError("Wompi financial institutions response is not a list", provider=self.provider.value)
        try:
            return [
                Bank(
                    code=str(bank["financial_institution_code"]),
                    name=bank["financial_institution_name"],
                )
                for bank in institutions
            ]
        except (KeyError, TypeError) as e:
            logger.error("wompi.malformed_response", operation="financial_institutions.list", error=str(e))
            raise UpstreamError(
                "Wompi financial institutions response is malformed",
                provider=self.provider.value,
            ) from e

    async def refund(self, payment_id: str, amount: Optional[Decimal] = None) -> RefundResult:
        """
        Void a transaction; partial when ``amount`` is given.

        Raises:
            UpstreamError: If Wompi rejects the void
        """
        if self.simulated:
            if await self.store.get(payment_id) is None:
                raise NotFoundError(f"Simulated payment {payment_id} not found", provider=self.provider.value)
            return RefundResult(success=True, provider=self.provider, status=VOIDED)

        headers = self._auth_headers(self.private_key, "private key")
        body = {"amount_in_cents": to_minor_units(amount)} if amount is not None else {}
        result = await self._request(
            "transaction.void",
            "POST",
            f"/transactions/{payment_id}/void",
            headers=headers,
            json=body,
        )
        # Wompi wraps the voided transaction in some API versions
        transaction = result.get("transaction", result) if isinstance(result, dict) else {}
        logger.info("wompi.transaction.voided", transaction_id=payment_id, status=transaction.get("status"))
        return RefundResult(success=True, provider=self.provider, status=transaction.get("status"))
