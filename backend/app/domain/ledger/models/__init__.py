"""Capital ledger models."""

from app.domain.ledger.models.capital_accounts import CapitalAccount
from app.domain.ledger.models.capital_transactions import CapitalTransaction
from app.domain.ledger.models.nav_marks import NAVMark
from app.domain.ledger.models.share_classes import ShareClass

__all__ = [
	"ShareClass",
	"CapitalAccount",
	"CapitalTransaction",
	"NAVMark",
]
