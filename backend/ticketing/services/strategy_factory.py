"""
Admission strategy factory.
Configures which advisory admission gate sits in front of the database.
"""

from typing import Optional

from ticketing.core.config import get_settings
from ticketing.services.interfaces.admission import AdmissionStrategy
from ticketing.services.interfaces.optimistic_admission import OptimisticAdmission
from ticketing.services.admission_service import RedisAdmission


def get_admission_strategy() -> AdmissionStrategy:
    """
    Build the configured strategy.

    ADMISSION_STRATEGY=optimistic (default): no gate
    ADMISSION_STRATEGY=redis: Redis counter gate, fails open
    """
    strategy = get_settings().ADMISSION_STRATEGY

    if strategy == 'redis':
        return RedisAdmission()
    return OptimisticAdmission()


_strategy: Optional[AdmissionStrategy] = None


def get_admission() -> AdmissionStrategy:
    """Get admission strategy singleton."""
    global _strategy
    if _strategy is None:
        _strategy = get_admission_strategy()
    return _strategy
