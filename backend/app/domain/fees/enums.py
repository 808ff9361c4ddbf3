from __future__ import annotations

from enum import Enum


class FeeType(str, Enum):
    MANAGEMENT = "management"
    PERFORMANCE = "performance"
    ADMIN = "admin"
    CUSTODIAN = "custodian"
    OTHER = "other"


class FeeCalculationMethod(str, Enum):
    PCT_OF_NAV = "pct_of_nav"
    PCT_OF_COMMITTED = "pct_of_committed"
    PCT_OF_INVESTED = "pct_of_invested"
    PCT_OF_GAINS = "pct_of_gains"


class FeeFrequency(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"


class FeeScheduleStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class FeeTransactionStatus(str, Enum):
    CALCULATED = "calculated"
    INVOICED = "invoiced"
    PAID = "paid"
    WAIVED = "waived"
