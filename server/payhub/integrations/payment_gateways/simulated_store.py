"""
Simulated Payment Store

Keeps fake payment records while the service runs without gateway
credentials. Two backends share the same async interface:

- InMemorySimulatedPaymentStore: process-local, lost on restart
- RedisSimulatedPaymentStore: shared between workers, TTL-bound

Neither is durable. A record is created pending and finalized at most once;
finalizing an already finalized record returns it untouched.
"""

import json
import threading
import time
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Optional

from redis.asyncio import Redis

from payhub.core.logging import get_logger

from .base import SimulatedPaymentRecord

logger = get_logger(__name__)

KEY_PREFIX = "payhub:simulated:"


def generate_simulated_id(prefix: str) -> str:
    """Fake provider id, e.g. ``wompi_tx_simulated_1718000000000_k3j9x0a1b``."""
    return f"{prefix}_simulated_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class SimulatedPaymentStore(ABC):
    """Key-value store of simulated payment records."""

    @abstractmethod
    async def save(self, record: SimulatedPaymentRecord) -> None:
        """Insert a new record."""
        pass

    @abstractmethod
    async def get(self, payment_id: str) -> Optional[SimulatedPaymentRecord]:
        """Return the record, or None when unknown."""
        pass

    @abstractmethod
    async def finalize(
        self,
        payment_id: str,
        status: str,
        finalized_at: datetime,
    ) -> Optional[SimulatedPaymentRecord]:
        """
        Move a record to its terminal status.

        Args:
            payment_id: Simulated payment id
            status: Terminal status in the provider vocabulary
            finalized_at: Timestamp stamped on the first finalization only

        Returns:
            The record after the call, or None when the id is unknown
        """
        pass


class InMemorySimulatedPaymentStore(SimulatedPaymentStore):
    """Dict-backed store guarded by a lock."""

    def __init__(self):
        self._records: Dict[str, SimulatedPaymentRecord] = {}
        self._lock = threading.Lock()

    async def save(self, record: SimulatedPaymentRecord) -> None:
        with self._lock:
            self._records[record.id] = record

    async def get(self, payment_id: str) -> Optional[SimulatedPaymentRecord]:
        return self._records.get(payment_id)

    async def finalize(
        self,
        payment_id: str,
        status: str,
        finalized_at: datetime,
    ) -> Optional[SimulatedPaymentRecord]:
        with self._lock:
            record = self._records.get(payment_id)
            if record is None:
                return None
            if record.finalized_at is None:
                record.status = status
                record.finalized_at = finalized_at
            return record

    def __len__(self) -> int:
        return len(self._records)


class RedisSimulatedPaymentStore(SimulatedPaymentStore):
    """
    Redis-backed store for multi-worker deployments.

    Records are JSON documents under ``payhub:simulated:<id>``. The single
    pending -> approved transition is claimed with ``SET NX`` on
    ``payhub:simulated:<id>:finalized`` so only one worker stamps it.
    """

    def __init__(self, client: Redis, ttl_seconds: int = 86400, key_prefix: str = KEY_PREFIX):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix

    def _key(self, payment_id: str) -> str:
        return f"{self.key_prefix}{payment_id}"

    def _finalized_key(self, payment_id: str) -> str:
        return f"{self.key_prefix}{payment_id}:finalized"

    async def save(self, record: SimulatedPaymentRecord) -> None:
        await self.client.set(
            self._key(record.id),
            json.dumps(record.to_dict()),
            ex=self.ttl_seconds,
        )

    async def get(self, payment_id: str) -> Optional[SimulatedPaymentRecord]:
        raw = await self.client.get(self._key(payment_id))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return SimulatedPaymentRecord.from_dict(json.loads(raw))

    async def finalize(
        self,
        payment_id: str,
        status: str,
        finalized_at: datetime,
    ) -> Optional[SimulatedPaymentRecord]:
        record = await self.get(payment_id)
        if record is None:
            return None

        claimed = await self.client.set(
            self._finalized_key(payment_id),
            finalized_at.isoformat(),
            nx=True,
            ex=self.ttl_seconds,
        )
        if not claimed:
            # The winner may not have saved the record yet, so the claim is
            # the source of truth for the finalization time.
            logger.info("simulated_store.finalize.already_claimed", payment_id=payment_id)
            claimed_at = await self.client.get(self._finalized_key(payment_id))
            if isinstance(claimed_at, bytes):
                claimed_at = claimed_at.decode("utf-8")
            record.status = status
            if claimed_at:
                record.finalized_at = datetime.fromisoformat(claimed_at)
            return record

        record.status = status
        record.finalized_at = finalized_at
        await self.save(record)
        return record
