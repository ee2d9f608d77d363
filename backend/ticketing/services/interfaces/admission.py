"""
Advisory admission gate interface.
Allows swapping between different load-shedding approaches in front of the
database without touching the admission controller.
"""

from abc import ABC, abstractmethod


class AdmissionStrategy(ABC):
    """
    Interface for advisory admission gates.

    A gate may reject a request early (reported as InsufficientInventory) but
    can never admit one the database would refuse: the conditional decrement
    and the seat-hold index remain authoritative.

    Implementations:
    - OptimisticAdmission: No pre-check, rely on the conditional decrement
    - RedisAdmission: Per-event ticket counter in Redis, fails open
    """

    @abstractmethod
    async def admit(self, event_id: int, quantity: int = 1) -> bool:
        """
        Check if a reservation request should proceed to the database.

        Returns:
            True if admitted (proceed to DB)
            False if rejected (fail fast)
        """

    @abstractmethod
    async def release(self, event_id: int, quantity: int = 1) -> None:
        """Give back tickets taken by admit() when the booking did not commit."""

    @abstractmethod
    async def sync(self, event_id: int, available_tickets: int) -> None:
        """Reset gate state to the database's available_tickets (reconciliation)."""
