import redis
import json
import logging
from contextlib import contextmanager
from typing import Callable, List, Optional
from redis.exceptions import LockError
from tablekeeper.config import settings
from tablekeeper.errors import BookingBusy
from tablekeeper.models.schemas import Booking, Table

logger = logging.getLogger(__name__)

BOOKING_ID_KEY = "booking-id"


class SnapshotCache:
    """Read-through cache of table/booking snapshots per restaurant, plus the commit lock."""

    def __init__(self, client=None, ttl: Optional[int] = None):
        self.client = client or redis.from_url(
            settings.REDIS_URL,
            decode_responses=True
        )
        self.ttl = ttl or settings.REDIS_TTL

    @staticmethod
    def _tables_key(tenant_id: int, restaurant_id: int) -> str:
        return f"tables:{tenant_id}:{restaurant_id}"

    @staticmethod
    def _bookings_key(tenant_id: int, restaurant_id: int, date: str) -> str:
        return f"bookings:{tenant_id}:{restaurant_id}:{date}"

    def get_tables(self, tenant_id: int, restaurant_id: int) -> Optional[List[Table]]:
        data = self.client.get(self._tables_key(tenant_id, restaurant_id))
        return [Table(**t) for t in json.loads(data)] if data else None

    def set_tables(self, tenant_id: int, restaurant_id: int, tables: List[Table]):
        self.client.setex(
            self._tables_key(tenant_id, restaurant_id),
            self.ttl,
            json.dumps([t.model_dump() for t in tables])
        )

    def get_bookings(self, tenant_id: int, restaurant_id: int, date: str) -> Optional[List[Booking]]:
        data = self.client.get(self._bookings_key(tenant_id, restaurant_id, date))
        return [Booking(**b) for b in json.loads(data)] if data else None

    def set_bookings(self, tenant_id: int, restaurant_id: int, date: str, bookings: List[Booking]):
        self.client.setex(
            self._bookings_key(tenant_id, restaurant_id, date),
            self.ttl,
            json.dumps([b.model_dump() for b in bookings])
        )

    def invalidate_bookings(self, tenant_id: int, restaurant_id: int, *dates: str):
        keys = [self._bookings_key(tenant_id, restaurant_id, d) for d in dates]
        if keys:
            self.client.delete(*keys)

    def invalidate_tables(self, tenant_id: int, restaurant_id: int):
        self.client.delete(self._tables_key(tenant_id, restaurant_id))

    def next_booking_id(self, last_id: Callable[[], int]) -> int:
        """
        Hands out booking ids shared by every tenant and worker.

        The counter is seeded once from `last_id` (the highest id in the store);
        INCR keeps concurrent creates from getting the same id.
        """
        if not self.client.exists(BOOKING_ID_KEY):
            self.client.set(BOOKING_ID_KEY, last_id(), nx=True)
        return int(self.client.incr(BOOKING_ID_KEY))

    @contextmanager
    def commit_lock(self, tenant_id: int, restaurant_id: int, date: str):
        """Serializes check-and-write for one restaurant day across workers."""
        name = f"lock:bookings:{tenant_id}:{restaurant_id}:{date}"
        lock = self.client.lock(
            name,
            timeout=settings.COMMIT_LOCK_TIMEOUT,
            blocking_timeout=settings.COMMIT_LOCK_TIMEOUT,
        )
        if not lock.acquire():
            raise BookingBusy(name)
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError:
                # held past its timeout; the write already happened
                logger.warning("Commit lock %s expired before release", name)
