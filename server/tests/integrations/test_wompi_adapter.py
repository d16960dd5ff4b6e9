"""
Wompi adapter tests over httpx.MockTransport.
"""

from decimal import Decimal
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from payhub.integrations.payment_gateways.base import (
    AdditionalPaymentData,
    Bank,
    GatewayNotConfiguredError,
    NotFoundError,
    PaymentProvider,
    TransactionResult,
    UnsupportedMethodError,
    UpstreamError,
    WompiPaymentMethod,
)

from gateway_doubles import CLIENT_URL, json_response, merchant_response, request_json

MERCHANT = "GET /v1/merchants/pub_test_abc"
TRANSACTIONS = "POST /v1/transactions"


def transaction_response(status="PENDING", extra=None, **fields):
    transaction = {
        "id": "15113-1718000000-12345",
        "status": status,
        "amount_in_cents": 4500000,
        "reference": "MDS-0042",
        "currency": "COP",
        "payment_method_type": "PSE",
        "payment_method": {"type": "PSE", "extra": extra or {}},
        "created_at": "2024-06-10T15:00:00.000Z",
        "finalized_at": None,
    }
    transaction.update(fields)
    return {"data": transaction}


class TestAcceptanceToken:
    """Merchant acceptance token."""

    @pytest.mark.asyncio
    async def test_get_acceptance_token(self, make_wompi_adapter):
        adapter, transport = make_wompi_adapter({MERCHANT: json_response(merchant_response("tok_123"))})

        assert await adapter.get_acceptance_token() == "tok_123"
        # merchant lookup is public, no bearer
        assert "authorization" not in transport.requests[0].headers

    @pytest.mark.asyncio
    async def test_missing_token_raises(self, make_wompi_adapter):
        adapter, _ = make_wompi_adapter({MERCHANT: json_response({"data": {"id": 1}})})

        with pytest.raises(UpstreamError):
            await adapter.get_acceptance_token()


class TestCreateTransaction:
    """Transaction creation for PSE, NEQUI and CARD."""

    @pytest.mark.asyncio
    async def test_pse_transaction(self, make_wompi_adapter, sample_order, pse_data):
        adapter, transport = make_wompi_adapter({
            MERCHANT: json_response(merchant_response("tok_123")),
            TRANSACTIONS: json_response(
                transaction_response(extra={"async_payment_url": "https://registro.pse.com.co/pay?x=1"}),
                status_code=201,
            ),
        })

        result = await adapter.create_transaction(sample_order, WompiPaymentMethod.PSE, pse_data)

        assert isinstance(result, TransactionResult)
        assert result.success is True
        assert result.provider == PaymentProvider.WOMPI
        assert result.transaction_id == "15113-1718000000-12345"
        assert result.status == "PENDING"
        assert result.redirect_url == "https://registro.pse.com.co/pay?x=1"
        assert result.reference == "MDS-0042"

        post = transport.calls("POST", "/v1/transactions")[0]
        assert post.headers["authorization"] == "Bearer prv_test_xyz"
        body = request_json(post)
        assert body == {
            "amount_in_cents": 4500000,
            "currency": "COP",
            "customer_email": "ana@example.com",
            "payment_method": {
                "type": "PSE",
                "user_type": 0,
                "user_legal_id_type": "CC",
                "user_legal_id": "1020304050",
                "financial_institution_code": "1",
                "payment_description": "Pedido Mar de Sabores #MDS-0042",
            },
            "reference": "MDS-0042",
            "acceptance_token": "tok_123",
            "redirect_url": f"{CLIENT_URL}/pedido/MDS-0042",
        }

    @pytest.mark.asyncio
    async def test_nequi_phone_falls_back_to_order(self, make_wompi_adapter, sample_order):
        adapter, transport = make_wompi_adapter({
            MERCHANT: json_response(merchant_response()),
            TRANSACTIONS: json_response(transaction_response(payment_method={"type": "NEQUI"})),
        })

        result = await adapter.create_transaction(sample_order, "NEQUI")

        body = request_json(transport.calls("POST", "/v1/transactions")[0])
        assert body["payment_method"] == {"type": "NEQUI", "phone_number": "3001234567"}
        assert result.redirect_url is None

    @pytest.mark.asyncio
    async def test_nequi_explicit_phone_and_email(self, make_wompi_adapter, sample_order):
        adapter, transport = make_wompi_adapter({
            MERCHANT: json_response(merchant_response()),
            TRANSACTIONS: json_response(transaction_response()),
        })

        await adapter.create_transaction(
            sample_order,
            WompiPaymentMethod.NEQUI,
            AdditionalPaymentData(phone_number="3109876543", email="otro@example.com"),
        )

        body = request_json(transport.calls("POST", "/v1/transactions")[0])
        assert body["payment_method"]["phone_number"] == "3109876543"
        assert body["customer_email"] == "otro@example.com"

    @pytest.mark.asyncio
    async def test_card_defaults_to_one_installment(self, make_wompi_adapter, sample_order):
        adapter, transport = make_wompi_adapter({
            MERCHANT: json_response(merchant_response()),
            TRANSACTIONS: json_response(transaction_response(status="APPROVED")),
        })

        result = await adapter.create_transaction(
            sample_order,
            WompiPaymentMethod.CARD,
            AdditionalPaymentData(card_token="tok_test_visa_4242"),
        )

        body = request_json(transport.calls("POST", "/v1/transactions")[0])
        assert body["payment_method"] == {"type": "CARD", "token": "tok_test_visa_4242", "installments": 1}
        assert result.status == "APPROVED"

    @pytest.mark.asyncio
    async def test_fractional_total_is_rounded_to_cents(self, make_wompi_adapter, sample_order):
        adapter, transport = make_wompi_adapter({
            MERCHANT: json_response(merchant_response()),
            TRANSACTIONS: json_response(transaction_response()),
        })
        sample_order.total = 9999.99

        await adapter.create_transaction(sample_order, "NEQUI")

        body = request_json(transport.calls("POST", "/v1/transactions")[0])
        assert body["amount_in_cents"] == 999999

    @pytest.mark.asyncio
    async def test_acceptance_token_failure_aborts_transaction(self, make_wompi_adapter, sample_order, pse_data):
        adapter, transport = make_wompi_adapter({
            MERCHANT: json_response({"error": {"type": "NOT_FOUND_ERROR"}}, status_code=404),
            TRANSACTIONS: json_response(transaction_response()),
        })

        with pytest.raises(UpstreamError):
            await adapter.create_transaction(sample_order, "PSE", pse_data)

        assert transport.calls("POST", "/v1/transactions") == []

    @pytest.mark.asyncio
    async def test_invalid_bank_code_is_rejected_upstream(self, make_wompi_adapter, sample_order, pse_data):
        error = {
            "error": {
                "type": "INPUT_VALIDATION_ERROR",
                "messages": {"financial_institution_code": ["Código de institución inválido"]},
            }
        }
        adapter, _ = make_wompi_adapter({
            MERCHANT: json_response(merchant_response()),
            TRANSACTIONS: json_response(error, status_code=422),
        })
        pse_data.bank_code = "9999"

        with pytest.raises(UpstreamError) as exc_info:
            await adapter.create_transaction(sample_order, "PSE", pse_data)

        assert exc_info.value.details["status"] == 422
        assert exc_info.value.details["response"] == error

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"data": None},
            {"data": {"status": "PENDING", "reference": "MDS-0042"}},
            {"data": {"id": "15113-1718000000-12345"}},
        ],
    )
    async def test_incomplete_transaction_is_upstream_error(self, make_wompi_adapter, sample_order, body):
        adapter, _ = make_wompi_adapter({
            MERCHANT: json_response(merchant_response()),
            TRANSACTIONS: json_response(body),
        })

        with pytest.raises(UpstreamError) as exc_info:
            await adapter.create_transaction(sample_order, "NEQUI")

        assert "malformed" in exc_info.value.error_message

    @pytest.mark.asyncio
    async def test_timeout_is_upstream_error(self, make_wompi_adapter, sample_order):
        def timeout(request):
            raise httpx.ReadTimeout("timed out", request=request)

        adapter, _ = make_wompi_adapter({MERCHANT: timeout})

        with pytest.raises(UpstreamError) as exc_info:
            await adapter.create_transaction(sample_order, "NEQUI")

        assert "timed out" in exc_info.value.error_message

    @pytest.mark.asyncio
    async def test_unknown_method(self, make_wompi_adapter, sample_order):
        adapter, transport = make_wompi_adapter({})

        with pytest.raises(UnsupportedMethodError):
            await adapter.create_transaction(sample_order, "BANCOLOMBIA_TRANSFER")

        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_missing_private_key(self, make_wompi_adapter, sample_order):
        adapter, transport = make_wompi_adapter({}, private_key=None)

        with pytest.raises(GatewayNotConfiguredError):
            await adapter.create_transaction(sample_order, "NEQUI")

        assert transport.requests == []


class TestSimulatedTransaction:
    """Transactions without credentials."""

    @pytest.mark.asyncio
    async def test_simulated_transaction_is_stored_pending(self, make_wompi_adapter, store, sample_order):
        adapter, transport = make_wompi_adapter({}, simulated=True)

        result = await adapter.create_transaction(sample_order, "NEQUI")

        assert transport.requests == []
        assert result.is_simulated is True
        assert result.status == "PENDING"
        assert result.reference == "MDS-0042"
        assert result.transaction_id.startswith("wompi_tx_simulated_")
        query = parse_qs(urlparse(result.redirect_url).query)
        assert query == {
            "transaction": [result.transaction_id],
            "order": ["MDS-0042"],
            "method": ["NEQUI"],
        }

        record = await store.get(result.transaction_id)
        assert record.status == "PENDING"
        assert record.payment_method == "NEQUI"
        assert record.provider == PaymentProvider.WOMPI

    @pytest.mark.asyncio
    async def test_simulated_banks(self, make_wompi_adapter):
        adapter, transport = make_wompi_adapter({}, simulated=True)

        banks = await adapter.list_banks()

        assert Bank(code="1", name="Banco que aprueba") in banks
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_simulated_refund_unknown(self, make_wompi_adapter):
        adapter, _ = make_wompi_adapter({}, simulated=True)

        with pytest.raises(NotFoundError):
            await adapter.refund("wompi_tx_simulated_missing")


class TestTransactionLookup:
    """Transaction status, banks and voids."""

    @pytest.mark.asyncio
    async def test_get_transaction_converts_amount(self, make_wompi_adapter):
        adapter, transport = make_wompi_adapter({
            "GET /v1/transactions/15113-1718000000-12345": json_response(
                transaction_response(
                    status="APPROVED",
                    amount_in_cents=999999,
                    finalized_at="2024-06-10T15:02:00.000Z",
                )
            ),
        })

        transaction = await adapter.get_transaction("15113-1718000000-12345")

        assert transaction.status == "APPROVED"
        assert transaction.amount == Decimal("9999.99")
        assert transaction.reference == "MDS-0042"
        assert transaction.payment_method == "PSE"
        assert transaction.created_at == "2024-06-10T15:00:00.000Z"
        assert transaction.finalized_at == "2024-06-10T15:02:00.000Z"
        assert transport.requests[0].headers["authorization"] == "Bearer prv_test_xyz"

    @pytest.mark.asyncio
    async def test_get_transaction_malformed_body(self, make_wompi_adapter):
        adapter, _ = make_wompi_adapter({
            "GET /v1/transactions/abc": lambda request: httpx.Response(200, text="<html>maintenance</html>"),
        })

        with pytest.raises(UpstreamError):
            await adapter.get_transaction("abc")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("data", [None, [], {"id": "abc"}, {"status": "APPROVED"}])
    async def test_get_transaction_incomplete_data(self, make_wompi_adapter, data):
        adapter, _ = make_wompi_adapter({
            "GET /v1/transactions/abc": json_response({"data": data}),
        })

        with pytest.raises(UpstreamError) as exc_info:
            await adapter.get_transaction("abc")

        assert exc_info.value.provider == "wompi"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "institutions",
        [
            [{"financial_institution_name": "BANCOLOMBIA"}],
            [{"financial_institution_code": "1007"}],
            ["1007"],
        ],
    )
    async def test_list_banks_malformed_entries(self, make_wompi_adapter, institutions):
        adapter, _ = make_wompi_adapter({
            "GET /v1/pse/financial_institutions": json_response({"data": institutions}),
        })

        with pytest.raises(UpstreamError):
            await adapter.list_banks()

    @pytest.mark.asyncio
    async def test_list_banks(self, make_wompi_adapter):
        adapter, transport = make_wompi_adapter({
            "GET /v1/pse/financial_institutions": json_response({
                "data": [
                    {"financial_institution_code": "1007", "financial_institution_name": "BANCOLOMBIA"},
                    {"financial_institution_code": 1051, "financial_institution_name": "DAVIVIENDA"},
                ]
            }),
        })

        banks = await adapter.list_banks()

        assert banks == [Bank(code="1007", name="BANCOLOMBIA"), Bank(code="1051", name="DAVIVIENDA")]
        assert transport.requests[0].headers["authorization"] == "Bearer pub_test_abc"

    @pytest.mark.asyncio
    async def test_full_void(self, make_wompi_adapter):
        path = "/v1/transactions/15113-1718000000-12345/void"
        adapter, transport = make_wompi_adapter({
            f"POST {path}": json_response({"data": {"transaction": {"id": "15113-1718000000-12345", "status": "VOIDED"}}}),
        })

        result = await adapter.refund("15113-1718000000-12345")

        assert result.success is True
        assert result.status == "VOIDED"
        assert request_json(transport.calls("POST", path)[0]) == {}

    @pytest.mark.asyncio
    async def test_partial_void(self, make_wompi_adapter):
        path = "/v1/transactions/15113-1718000000-12345/void"
        adapter, transport = make_wompi_adapter({
            f"POST {path}": json_response({"data": {"status": "APPROVED"}}),
        })

        result = await adapter.refund("15113-1718000000-12345", Decimal("10000.50"))

        assert result.status == "APPROVED"
        assert request_json(transport.calls("POST", path)[0]) == {"amount_in_cents": 1000050}
