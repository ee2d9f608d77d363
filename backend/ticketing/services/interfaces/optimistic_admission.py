"""
Optimistic admission strategy - no pre-check.
Relies entirely on the conditional decrement in the database.
"""

from ticketing.services.interfaces.admission import AdmissionStrategy


class OptimisticAdmission(AdmissionStrategy):
    """
    Always admit.

    Use when:
    - Normal load, tens of concurrent requests per event
    - No Redis available
    """

    async def admit(self, event_id: int, quantity: int = 1) -> bool:
        return True

    async def release(self, event_id: int, quantity: int = 1) -> None:
        pass

    async def sync(self, event_id: int, available_tickets: int) -> None:
        pass
