from fastapi import APIRouter, Body, Depends, status

from payhub.api.dependencies.payments import get_payment_service
from payhub.core.logging import bind_payment_context, get_logger
from payhub.schemas.payment import (
    BankRead,
    PaymentCreateRequest,
    PaymentModeRead,
    PaymentResultRead,
    PaymentStatusRead,
    RefundRead,
    RefundRequest,
    SimulatedConfirmationRead,
    SimulatedPaymentRead,
    WebhookAck,
)
from payhub.services.payment_service import PaymentService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.post(
    "",
    response_model=PaymentResultRead,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment_endpoint(
    payload: PaymentCreateRequest,
    service: PaymentService = Depends(get_payment_service),
):
    result = await service.create_payment(
        payload.order.to_domain(),
        payload.method,
        additional_data=payload.additional_data.to_domain() if payload.additional_data else None,
        payer=payload.user.to_domain() if payload.user else None,
    )
    return result


@router.get("/mode", response_model=PaymentModeRead)
async def payment_mode_endpoint(service: PaymentService = Depends(get_payment_service)):
    return {"simulated": service.is_simulated_mode}


@router.get("/banks", response_model=list[BankRead])
async def list_banks_endpoint(service: PaymentService = Depends(get_payment_service)):
    return await service.list_banks()


@router.post("/webhook/{provider}", response_model=WebhookAck)
async def webhook_endpoint(
    provider: str,
    payload: dict = Body(...),
    service: PaymentService = Depends(get_payment_service),
):
    bind_payment_context(provider=provider)
    logger.info("webhook.received")
    event = await service.process_webhook(provider, payload)
    return {"received": True, "event": event}


@router.post("/simulated/{payment_id}/confirm", response_model=SimulatedConfirmationRead)
async def confirm_simulated_payment_endpoint(
    payment_id: str,
    service: PaymentService = Depends(get_payment_service),
):
    return await service.confirm_simulated_payment(payment_id)


@router.get("/simulated/{payment_id}", response_model=SimulatedPaymentRead)
async def get_simulated_payment_endpoint(
    payment_id: str,
    service: PaymentService = Depends(get_payment_service),
):
    return await service.get_simulated_payment(payment_id)


@router.get("/{provider}/{payment_id}", response_model=PaymentStatusRead, response_model_exclude_none=True)
async def payment_status_endpoint(
    provider: str,
    payment_id: str,
    service: PaymentService = Depends(get_payment_service),
):
    bind_payment_context(provider=provider, payment_id=payment_id)
    return await service.get_payment_status(provider, payment_id)


@router.post("/{provider}/{payment_id}/refund", response_model=RefundRead)
async def refund_endpoint(
    provider: str,
    payment_id: str,
    payload: RefundRequest | None = None,
    service: PaymentService = Depends(get_payment_service),
):
    bind_payment_context(provider=provider, payment_id=payment_id)
    amount = payload.amount if payload else None
    return await service.refund(provider, payment_id, amount)
