from __future__ import annotations

from enum import Enum


class CapitalTransactionType(str, Enum):
    CONTRIBUTION = "contribution"
    DISTRIBUTION = "distribution"
    FEE_DEBIT = "fee_debit"


class CapitalAccountStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class ShareClassStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
