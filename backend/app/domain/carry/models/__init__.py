"""Carried interest domain models."""

from app.domain.carry.models.waterfalls import WaterfallCalculation, WaterfallStructure
from app.domain.carry.models.carry_accounts import CarriedInterestAccount, CarryAccrual
from app.domain.carry.models.clawbacks import ClawbackProvision

__all__ = [
	"WaterfallStructure",
	"WaterfallCalculation",
	"CarriedInterestAccount",
	"CarryAccrual",
	"ClawbackProvision",
]
