from fastapi import Request

from payhub.services.payment_service import PaymentService


def get_payment_service(request: Request) -> PaymentService:
    return request.app.state.payment_service
