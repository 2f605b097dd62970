"""Test factories for generating test data.

Re-exports all factories for convenient imports:
    from tests.factories import AutomationFactory, ScheduleFactory, ...
"""

from tests.factories.automation import (
    AutomationFactory,
    ExecutionRecordFactory,
    ScheduleFactory,
)
from tests.factories.base import BaseFactory, generate_uuid, utc_now

__all__ = [
    # Base
    "BaseFactory",
    "generate_uuid",
    "utc_now",
    # Automation
    "AutomationFactory",
    "ExecutionRecordFactory",
    "ScheduleFactory",
]
