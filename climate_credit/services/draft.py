# climate_credit/services/draft.py

"""
Application drafts: operator input merged with AI-extracted fields.

Each field remembers where its value came from. Operator-entered values are
authoritative; extracted values only replace earlier extracted values when
the new confidence is at least as high.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError

from climate_credit.core.errors import DraftIncomplete
from climate_credit.schemas.ai import ConfidenceLevel, ExtractionResult
from climate_credit.schemas.assessment import ClientInput, LoanInput, LocationInput


class FieldSource(str, Enum):
    OPERATOR = "operator"
    EXTRACTED = "extracted"


class DraftField(BaseModel):
    value: Any
    source: FieldSource
    confidence: ConfidenceLevel = ConfidenceLevel.HIGH


# Extraction project types collapse onto the loan purposes the risk policy knows.
PROJECT_TYPE_TO_PURPOSE = {
    "agriculture": "agriculture",
    "fishing": "agriculture",
    "livestock": "livestock",
    "retail": "small_business",
    "manufacturing": "small_business",
    "services": "small_business",
    "transport": "small_business",
    "housing": "housing",
}

# Extraction field -> draft field
_EXTRACTION_TO_DRAFT = {
    "client_age": "age",
    "loan_amount": "amount",
    "crop_type": "crop_type",
    "existing_loans": "existing_loans",
    "repayment_history": "repayment_history",
    "client_name": "client_name",
    "loan_term": "loan_term",
    "loan_type": "loan_type",
    "monthly_income": "monthly_income",
    "collateral_type": "collateral_type",
    "business_experience": "business_experience",
    "land_ownership": "land_ownership",
    "irrigation_access": "irrigation_access",
    "insurance_status": "insurance_status",
}


class ApplicationDraft(BaseModel):
    fields: Dict[str, DraftField] = Field(default_factory=dict)

    @classmethod
    def from_operator(cls, **values: Any) -> "ApplicationDraft":
        draft = cls()
        for name, value in values.items():
            if value is not None:
                draft.set_operator(name, value)
        return draft

    def set_operator(self, name: str, value: Any) -> None:
        self.fields[name] = DraftField(value=value, source=FieldSource.OPERATOR)

    def value(self, name: str, default: Any = None) -> Any:
        entry = self.fields.get(name)
        return default if entry is None else entry.value

    def offer_extracted(self, name: str, value: Any, confidence: ConfidenceLevel) -> bool:
        """Apply an extracted value if the trust rules allow it. Returns True when applied."""
        if value is None:
            return False
        current = self.fields.get(name)
        if current is not None:
            if current.source == FieldSource.OPERATOR:
                return False
            if confidence.rank < current.confidence.rank:
                return False
        self.fields[name] = DraftField(value=value, source=FieldSource.EXTRACTED, confidence=confidence)
        return True

    def to_inputs(self):
        """Build assessment inputs; raises DraftIncomplete when a field is missing or out of range."""
        missing = [
            name for name in ("latitude", "longitude", "amount", "purpose")
            if self.value(name) is None
        ]
        if missing:
            raise DraftIncomplete(f"Draft is missing required fields: {', '.join(missing)}")

        try:
            location = LocationInput(
                latitude=self.value("latitude"),
                longitude=self.value("longitude"),
                location_name=self.value("location_name"),
            )
            loan = LoanInput(
                amount=self.value("amount"),
                purpose=self.value("purpose"),
                crop_type=self.value("crop_type"),
            )
            client = ClientInput(
                age=self.value("age"),
                existing_loans=self.value("existing_loans", 0),
                repayment_history=self.value("repayment_history"),
            )
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise DraftIncomplete(f"Draft has invalid values: {problems}") from e
        return location, loan, client


def purpose_for_project_type(project_type: Optional[str]) -> Optional[str]:
    if not project_type:
        return None
    return PROJECT_TYPE_TO_PURPOSE.get(project_type.strip().lower())


def merge_extraction(draft: ApplicationDraft, extraction: ExtractionResult) -> ApplicationDraft:
    """Return a new draft with the extraction folded in; the input draft is left untouched."""
    merged = draft.model_copy(deep=True)
    extracted = extraction.fields.model_dump()

    for source_name, draft_name in _EXTRACTION_TO_DRAFT.items():
        merged.offer_extracted(
            draft_name,
            extracted.get(source_name),
            extraction.confidence.get(source_name, ConfidenceLevel.LOW),
        )

    merged.offer_extracted(
        "purpose",
        purpose_for_project_type(extracted.get("project_type")),
        extraction.confidence.get("project_type", ConfidenceLevel.LOW),
    )
    return merged
