"""Tax reporting models."""

from app.domain.tax.models.tax_documents import TaxCharacterization, TaxDocument

__all__ = [
	"TaxCharacterization",
	"TaxDocument",
]
