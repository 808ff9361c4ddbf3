from __future__ import annotations

from enum import Enum


class WaterfallType(str, Enum):
    EUROPEAN = "european"
    AMERICAN = "american"
    HYBRID = "hybrid"


class WaterfallStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class CarryAccountStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"


class ClawbackStatus(str, Enum):
    CALCULATED = "calculated"
    NOTIFIED = "notified"
    PAID = "paid"
    WAIVED = "waived"
