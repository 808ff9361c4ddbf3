"""Period close models."""

from app.domain.period_close.models.period_close_runs import PeriodCloseRun

__all__ = [
	"PeriodCloseRun",
]
