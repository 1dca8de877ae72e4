"""
ExtractionResult schema — the contract with the extraction service.

Wire format (camelCase, exactly what the model is asked to return):

    {
      "docType": "BELASTING|BOETE|VERZEKERING|ABONNEMENT|OVERIG",
      "sender": string|null,
      "summary": string (1..1200 chars),
      "actions": [{"title": string(1..200), "description": string(1..2000),
                   "deadline": "YYYY-MM-DD"|null}],
      "amountEUR": number|null (abs <= 9999999999.99),
      "deadline": "YYYY-MM-DD"|null,
      "confidence": number (0..100)
    }

Parsing model output is two explicit phases, each returning a tagged
result instead of raising:

    parse_model_output(raw)  → ParsedOutput | ParseFailure(stage="parse")
    validate_extraction(obj) → ValidExtraction | ParseFailure(stage="validate")
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from paperfix.core.dates import parse_iso_date, quantize_amount

# Largest magnitude documents.amount (NUMERIC(12, 2)) can hold
MAX_AMOUNT_EUR = Decimal("9999999999.99")


class DocType(str, Enum):
    """Closed set of letter categories (Dutch wire values)."""
    BELASTING   = "BELASTING"     # tax
    BOETE       = "BOETE"         # fine
    VERZEKERING = "VERZEKERING"   # insurance
    ABONNEMENT  = "ABONNEMENT"    # subscription
    OVERIG      = "OVERIG"        # other


def _iso_date_or_none(value: Any) -> Optional[date]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("deadline must be a YYYY-MM-DD string or null")
    return parse_iso_date(value)


class ProposedAction(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    title:       str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=2000)
    deadline:    Optional[date] = None

    @field_validator("deadline", mode="before")
    @classmethod
    def _deadline_format(cls, value: Any) -> Optional[date]:
        return _iso_date_or_none(value)


class ExtractionResult(BaseModel):
    """Validated, strongly-typed output of the extraction service. Never persisted as-is."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    doc_type: DocType = Field(..., validation_alias=AliasChoices("docType", "doc_type"))
    sender:   Optional[str] = None
    summary:  str = Field(
        ...,
        min_length=1,
        max_length=1200,
        # older prompts answered with summarySimple / summarySimpleNL
        validation_alias=AliasChoices("summary", "summarySimple", "summarySimpleNL"),
    )
    actions:    list[ProposedAction]
    amount_eur: Optional[Decimal] = Field(
        None,
        validation_alias=AliasChoices("amountEUR", "amount_eur"),
    )
    deadline:   Optional[date] = None
    confidence: float = Field(..., ge=0, le=100)

    @field_validator("deadline", mode="before")
    @classmethod
    def _deadline_format(cls, value: Any) -> Optional[date]:
        return _iso_date_or_none(value)

    @field_validator("amount_eur", mode="before")
    @classmethod
    def _amount_is_number(cls, value: Any) -> Optional[Decimal]:
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
            raise ValueError("amountEUR must be a number or null")
        amount = Decimal(str(value))
        # must fit documents.amount NUMERIC(12, 2) after rounding to cents
        if not amount.is_finite() or abs(amount) > MAX_AMOUNT_EUR:
            raise ValueError(f"amountEUR must be between -{MAX_AMOUNT_EUR} and {MAX_AMOUNT_EUR}")
        return quantize_amount(amount)

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence_is_number(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("confidence must be a number")
        if not math.isfinite(value):
            raise ValueError("confidence must be a finite number")
        return value

    @property
    def rounded_confidence(self) -> int:
        return int(Decimal(str(self.confidence)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# ---------------------------------------------------------------------------
# Tagged parse / validation results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ParsedOutput:
    data: Any
    ok: Literal[True] = True


@dataclass(frozen=True)
class ValidExtraction:
    result: ExtractionResult
    ok: Literal[True] = True


@dataclass(frozen=True)
class ParseFailure:
    stage:  Literal["parse", "validate"]
    detail: str
    ok: Literal[False] = False


ParseOutcome = Union[ParsedOutput, ParseFailure]
ValidationOutcome = Union[ValidExtraction, ParseFailure]

_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL | re.IGNORECASE)


def parse_model_output(raw: str) -> ParseOutcome:
    """Structural phase: raw completion text → JSON object."""
    fenced = _FENCE_RE.match(raw)
    body = fenced.group(1) if fenced else raw.strip()
    if not body:
        return ParseFailure(stage="parse", detail="empty output")
    try:
        data = json.loads(body)
    except json.JSONDecodeError as exc:
        return ParseFailure(stage="parse", detail=f"invalid JSON: {exc}")
    if not isinstance(data, dict):
        return ParseFailure(
            stage="parse",
            detail=f"expected a JSON object, got {type(data).__name__}",
        )
    return ParsedOutput(data=data)


def _format_errors(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "<root>"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def validate_extraction(data: Any) -> ValidationOutcome:
    """Field phase: JSON object → ExtractionResult."""
    try:
        return ValidExtraction(result=ExtractionResult.model_validate(data))
    except ValidationError as exc:
        return ParseFailure(stage="validate", detail=_format_errors(exc))


def check_model_output(raw: str) -> ValidationOutcome:
    """Both phases in order; the first failure wins."""
    parsed = parse_model_output(raw)
    if not parsed.ok:
        return parsed
    return validate_extraction(parsed.data)
