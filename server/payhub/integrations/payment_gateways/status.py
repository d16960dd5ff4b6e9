"""Provider status → canonical status."""

from typing import Dict, Optional, Union

from .base import CanonicalStatus, PaymentProvider

STATUS_MAP: Dict[str, Dict[str, CanonicalStatus]] = {
    PaymentProvider.MERCADOPAGO.value: {
        "approved": CanonicalStatus.COMPLETED,
        "authorized": CanonicalStatus.PENDING,
        "pending": CanonicalStatus.PENDING,
        "in_process": CanonicalStatus.PENDING,
        "rejected": CanonicalStatus.FAILED,
        "refunded": CanonicalStatus.REFUNDED,
        "charged_back": CanonicalStatus.REFUNDED,
        "cancelled": CanonicalStatus.CANCELLED,
    },
    PaymentProvider.WOMPI.value: {
        "APPROVED": CanonicalStatus.COMPLETED,
        "PENDING": CanonicalStatus.PENDING,
        "DECLINED": CanonicalStatus.FAILED,
        "ERROR": CanonicalStatus.FAILED,
        "VOIDED": CanonicalStatus.REFUNDED,
    },
}


def normalize_status(
    provider_status: Optional[str],
    provider: Union[PaymentProvider, str, None],
) -> CanonicalStatus:
    """Never raises; anything outside the table is UNKNOWN."""
    if isinstance(provider, PaymentProvider):
        provider = provider.value
    if not isinstance(provider, str) or not isinstance(provider_status, str):
        return CanonicalStatus.UNKNOWN
    return STATUS_MAP.get(provider, {}).get(provider_status, CanonicalStatus.UNKNOWN)
