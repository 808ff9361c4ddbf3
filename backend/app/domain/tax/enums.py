from enum import Enum


class TaxDocumentType(str, Enum):
    K1 = "k1"
    FORM_1099_DIV = "1099_div"
    ANNUAL_STATEMENT = "annual_statement"
    OTHER = "other"


class TaxDocumentStatus(str, Enum):
    DRAFT = "draft"
    FINALIZED = "finalized"
