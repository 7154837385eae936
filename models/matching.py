"""
Match suggestion schemas.

Suggestions are computed on demand and never persisted.
"""

from pydantic import Field
from typing import Optional
from enum import Enum

from models.base import BaseSchema
from models.inventory import InventoryItemSummary


class MatchType(str, Enum):
    """Which pass produced a suggestion."""
    SKU_EXACT = "sku_exact"
    BRAND_MODEL_EXACT = "brand_model_exact"
    BRAND_MODEL_FUZZY = "brand_model_fuzzy"


class MatchDetails(BaseSchema):
    sku_match: Optional[bool] = None
    brand_match: bool = False
    model_match: bool = False
    similarity_score: Optional[float] = None


class MatchSuggestion(BaseSchema):
    """Candidate inventory item for a catalog product."""

    inventory_item: InventoryItemSummary
    match_type: MatchType
    confidence: int = Field(..., ge=0, le=100)
    match_details: MatchDetails


class MatchSuggestionsResponse(BaseSchema):
    suggestions: list[MatchSuggestion]
    current_link: Optional[InventoryItemSummary] = None


class AutoMatchResult(BaseSchema):
    """Outcome of a batch auto-match run."""

    matched: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)
