"""Reporting domain models."""

from app.domain.reporting.models.investor_statements import InvestorStatement

__all__ = [
	"InvestorStatement",
]
