"""Fee domain models."""

from app.domain.fees.models.fee_schedules import FeeSchedule
from app.domain.fees.models.fee_transactions import FeeTransaction

__all__ = [
	"FeeSchedule",
	"FeeTransaction",
]
