from __future__ import annotations

from enum import Enum


class Env(str, Enum):
    dev = "dev"
    prod = "prod"
    test = "test"


class AccessLevel(str, Enum):
    """Visibility tag stamped on fund-scoped rows and audit events."""

    internal = "internal"
    investor = "investor"
    auditor = "auditor"


class Role(str, Enum):
    ADMIN = "ADMIN"
    GP = "GP"
    FUND_ADMIN = "FUND_ADMIN"
    COMPLIANCE = "COMPLIANCE"
    AUDITOR = "AUDITOR"
    INVESTOR = "INVESTOR"


class NavFrequency(str, Enum):
    monthly = "monthly"
    quarterly = "quarterly"
    annual = "annual"
