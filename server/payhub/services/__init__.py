from payhub.services import payment_service

__all__ = [
    "payment_service",
]
