"""
Redis admission gate for high-contention on-sales.
Implements AdmissionStrategy with a per-event remaining-tickets counter.

Circuit Breaker Pattern:
  On Redis failure the gate "fails open" (admits the request).
  A Redis outage must not block bookings; the database is authoritative
  and its conditional decrement still prevents overselling.

  Tradeoff: during an outage every request reaches the database, which is
  exactly the optimistic strategy's behavior.

Counter lifecycle:
  - admit():   Lua script checks and decrements atomically
  - release(): adds tickets back when the DB commit did not happen
  - sync():    overwritten with the DB value after each successful commit,
               after each cancellation, and whenever admit() rejects a
               request the DB could still serve (a missed sync)
  A missing counter means "unknown" and admits; the first commit creates it.
"""

import os

import redis.asyncio as redis

from ticketing.core.logging import get_logger
from ticketing.core.metrics import redis_connection_errors, redis_circuit_breaker_open
from ticketing.infrastructure.redis_client import get_redis
from ticketing.services.interfaces.admission import AdmissionStrategy

logger = get_logger(__name__)

SCRIPT_PATH = os.path.join(os.path.dirname(__file__), '../infrastructure/admission_lua.lua')
with open(SCRIPT_PATH, 'r') as f:
    ADMISSION_SCRIPT = f.read()

# Only give tickets back to a counter that exists; a missing one stays unknown
RELEASE_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 1 then
  return redis.call('INCRBY', KEYS[1], ARGV[1])
end
return -1
"""


def _counter_key(event_id: int) -> str:
    return f"tickets:remaining:{event_id}"


class RedisAdmission(AdmissionStrategy):
    """
    Redis-based admission gate.

    Use when:
    - Thousands of concurrent requests per event (flash sales)
    - The database must be protected from requests that cannot succeed
    """

    def __init__(self, client: redis.Redis = None):
        self._client = client

    async def _redis(self) -> redis.Redis:
        if self._client is None:
            self._client = await get_redis()
        return self._client

    def _trip(self, operation: str, error: Exception) -> None:
        redis_connection_errors.inc()
        redis_circuit_breaker_open.set(1)
        logger.warning("admission_gate_unavailable", operation=operation, error=str(error))

    async def admit(self, event_id: int, quantity: int = 1) -> bool:
        client = await self._redis()
        if client is None:
            return True

        try:
            result = await client.eval(ADMISSION_SCRIPT, 1, _counter_key(event_id), quantity)
        except (redis.RedisError, OSError) as e:
            self._trip("admit", e)
            return True

        redis_circuit_breaker_open.set(0)
        return int(result) != 0

    async def release(self, event_id: int, quantity: int = 1) -> None:
        client = await self._redis()
        if client is None:
            return
        try:
            await client.eval(RELEASE_SCRIPT, 1, _counter_key(event_id), quantity)
        except (redis.RedisError, OSError) as e:
            self._trip("release", e)

    async def sync(self, event_id: int, available_tickets: int) -> None:
        client = await self._redis()
        if client is None:
            return
        try:
            await client.set(_counter_key(event_id), available_tickets)
        except (redis.RedisError, OSError) as e:
            self._trip("sync", e)
