"""
Product matcher: suggests inventory items for imported catalog entries.

Three passes, strongest first:
    1. SKU exact            (confidence 100)
    2. Brand + model exact  (confidence 95)
    3. Brand + model fuzzy  (confidence = weighted Levenshtein similarity)

Suggestions are computed on demand; the only thing written is the
catalog entry's linked_inventory_id.
"""

from typing import Optional

import structlog
from supabase import Client

from config.settings import Settings
from models.catalog import CatalogEntry
from models.inventory import InventoryItemSummary
from models.matching import (
    AutoMatchResult,
    MatchDetails,
    MatchSuggestion,
    MatchType,
)
from exceptions import DatabaseError
from utils.text_utils import normalize_match_text, round_half_up, similarity

logger = structlog.get_logger(__name__)

CANDIDATE_COLUMNS = "id, brand, model, sku, rrp_aud, sale_price"

SKU_CONFIDENCE = 100
EXACT_CONFIDENCE = 95

SKU_CANDIDATE_LIMIT = 5
BRAND_CANDIDATE_LIMIT = 20

FUZZY_BRAND_GATE = 70
FUZZY_MIN_SCORE = 50
FUZZY_DETAIL_THRESHOLD = 80
FUZZY_BRAND_WEIGHT = 0.4
FUZZY_MODEL_WEIGHT = 0.6


# ===================
# IDENTITY EXTRACTION
# ===================

def extract_brand(entry: CatalogEntry) -> str:
    """Normalized vendor, else the normalized first word of the title."""
    if entry.vendor:
        return normalize_match_text(entry.vendor)

    words = entry.title.split()
    return normalize_match_text(words[0] if words else "")


def extract_model(entry: CatalogEntry) -> str:
    """Normalized title minus the brand prefix, else the product type."""
    brand = extract_brand(entry)

    model = normalize_match_text(entry.title)
    if brand and model.startswith(brand):
        model = model[len(brand):].strip()

    if not model and entry.product_type:
        model = normalize_match_text(entry.product_type)

    return model


def extract_sku(entry: CatalogEntry) -> Optional[str]:
    """First non-empty variant SKU, stripped."""
    for variant in entry.variants:
        if variant.sku and variant.sku.strip():
            return variant.sku.strip()
    return None


class MatchingService:
    """
    Catalog-to-inventory matching.

    Reads candidates from inventory_items, links through shopify_products.
    """

    def __init__(self, db: Client, settings: Optional[Settings] = None):
        self.db = db
        self.catalog_table = "shopify_products"
        self.inventory_table = "inventory_items"
        self.suggestion_limit = settings.match_suggestion_limit if settings else 10
        self.fuzzy_candidate_limit = settings.fuzzy_candidate_limit if settings else 100
        self.auto_match_min_confidence = settings.auto_match_min_confidence if settings else 95

    # ===================
    # SUGGESTIONS
    # ===================

    def find_matches(self, entry: CatalogEntry, limit: Optional[int] = None) -> list[MatchSuggestion]:
        """
        Ranked inventory candidates for a catalog entry.

        An inventory item appears at most once, under the strongest pass
        that produced it.

        Args:
            entry: Catalog entry to match
            limit: Max suggestions (defaults to the configured limit)

        Returns:
            Suggestions sorted by confidence, highest first
        """
        if limit is None:
            limit = self.suggestion_limit

        sku = extract_sku(entry)
        brand = extract_brand(entry)
        model = extract_model(entry)

        logger.debug(
            "finding_matches",
            catalog_id=entry.id,
            sku=sku,
            brand=brand,
            model=model
        )

        suggestions: list[MatchSuggestion] = []
        seen: set[str] = set()

        if sku:
            for item in self._candidates_by_sku(sku):
                if item.id in seen:
                    continue
                seen.add(item.id)
                suggestions.append(MatchSuggestion(
                    inventory_item=item,
                    match_type=MatchType.SKU_EXACT,
                    confidence=SKU_CONFIDENCE,
                    match_details=MatchDetails(
                        sku_match=True,
                        brand_match=normalize_match_text(item.brand) == brand,
                        model_match=normalize_match_text(item.model) == model
                    )
                ))

        if brand:
            for item in self._candidates_by_brand(brand):
                if item.id in seen:
                    continue

                item_brand = normalize_match_text(item.brand)
                brand_match = (
                    item_brand == brand
                    or brand in item_brand
                    or item_brand in brand
                )
                if not (brand_match and normalize_match_text(item.model) == model):
                    continue

                seen.add(item.id)
                suggestions.append(MatchSuggestion(
                    inventory_item=item,
                    match_type=MatchType.BRAND_MODEL_EXACT,
                    confidence=EXACT_CONFIDENCE,
                    match_details=MatchDetails(
                        sku_match=(item.sku == sku) if sku else None,
                        brand_match=True,
                        model_match=True
                    )
                ))

        if brand and len(suggestions) < limit:
            fuzzy = self._fuzzy_matches(sku, brand, model, seen)
            for score, suggestion in fuzzy[:limit - len(suggestions)]:
                seen.add(suggestion.inventory_item.id)
                suggestions.append(suggestion)

        # sorted() is stable: equal confidences keep pass order
        suggestions = sorted(suggestions, key=lambda s: s.confidence, reverse=True)[:limit]

        logger.info(
            "matches_found",
            catalog_id=entry.id,
            count=len(suggestions),
            top_confidence=suggestions[0].confidence if suggestions else None
        )
        return suggestions

    def _fuzzy_matches(
        self,
        sku: Optional[str],
        brand: str,
        model: str,
        seen: set[str]
    ) -> list[tuple[float, MatchSuggestion]]:
        scored = []

        for item in self._fuzzy_candidates():
            if item.id in seen:
                continue

            brand_sim = similarity(normalize_match_text(item.brand), brand)
            if brand_sim < FUZZY_BRAND_GATE:
                continue

            model_sim = similarity(normalize_match_text(item.model), model)
            score = brand_sim * FUZZY_BRAND_WEIGHT + model_sim * FUZZY_MODEL_WEIGHT
            if score < FUZZY_MIN_SCORE:
                continue

            scored.append((score, MatchSuggestion(
                inventory_item=item,
                match_type=MatchType.BRAND_MODEL_FUZZY,
                confidence=round_half_up(score),
                match_details=MatchDetails(
                    sku_match=(item.sku == sku) if sku else None,
                    brand_match=brand_sim >= FUZZY_DETAIL_THRESHOLD,
                    model_match=model_sim >= FUZZY_DETAIL_THRESHOLD,
                    similarity_score=score
                )
            )))

        scored.sort(key=lambda pair: pair[0], reverse=True)
        return scored

    # ===================
    # CANDIDATE QUERIES
    # ===================

    def _candidates_by_sku(self, sku: str) -> list[InventoryItemSummary]:
        return self._select_candidates(
            "sku",
            lambda q: q.eq("sku", sku).limit(SKU_CANDIDATE_LIMIT)
        )

    def _candidates_by_brand(self, brand: str) -> list[InventoryItemSummary]:
        return self._select_candidates(
            "brand",
            lambda q: q.ilike("brand", f"%{brand}%").limit(BRAND_CANDIDATE_LIMIT)
        )

    def _fuzzy_candidates(self) -> list[InventoryItemSummary]:
        return self._select_candidates(
            "fuzzy",
            lambda q: q.limit(self.fuzzy_candidate_limit)
        )

    def _select_candidates(self, stage: str, refine) -> list[InventoryItemSummary]:
        try:
            query = (
                self.db.table(self.inventory_table)
                .select(CANDIDATE_COLUMNS)
                .eq("is_archived", False)
            )
            result = refine(query).execute()
        except Exception as e:
            logger.error("match_candidates_failed", stage=stage, error=str(e))
            raise DatabaseError("select", str(e))

        return [InventoryItemSummary(**row) for row in result.data or []]

    # ===================
    # LINKING
    # ===================

    def link_product(self, catalog_id: str, inventory_id: str) -> None:
        """Point a catalog entry at an inventory item (replaces any link)."""
        logger.info("linking_product", catalog_id=catalog_id, inventory_id=inventory_id)
        self._set_link(catalog_id, inventory_id)

    def unlink_product(self, catalog_id: str) -> None:
        """Clear a catalog entry's link. No-op if already unlinked."""
        logger.info("unlinking_product", catalog_id=catalog_id)
        self._set_link(catalog_id, None)

    def _set_link(self, catalog_id: str, inventory_id: Optional[str]) -> None:
        try:
            self.db.table(self.catalog_table).update({
                "linked_inventory_id": inventory_id
            }).eq("id", catalog_id).execute()
        except Exception as e:
            logger.error(
                "set_link_failed",
                catalog_id=catalog_id,
                inventory_id=inventory_id,
                error=str(e)
            )
            raise DatabaseError("update", str(e))

    # ===================
    # BATCH
    # ===================

    def auto_match_all(self, min_confidence: Optional[int] = None) -> AutoMatchResult:
        """
        Link every unlinked catalog entry whose best match is confident enough.

        One bad entry never stops the batch; its message lands in errors.

        Args:
            min_confidence: Minimum top confidence to link (defaults to setting)

        Returns:
            AutoMatchResult with matched/skipped counts and per-item errors
        """
        threshold = self.auto_match_min_confidence if min_confidence is None else min_confidence
        result = AutoMatchResult()

        try:
            response = (
                self.db.table(self.catalog_table)
                .select("*")
                .is_("linked_inventory_id", "null")
                .execute()
            )
        except Exception as e:
            logger.error("auto_match_fetch_failed", error=str(e))
            result.errors.append(f"Failed to fetch unlinked products: {e}")
            return result

        rows = response.data or []
        logger.info("auto_match_started", unlinked=len(rows), min_confidence=threshold)

        for row in rows:
            title = row.get("title", row.get("id"))

            try:
                entry = CatalogEntry(**row)
                matches = self.find_matches(entry, 1)
            except Exception as e:
                logger.warning("auto_match_item_failed", catalog_id=row.get("id"), error=str(e))
                result.errors.append(f"Error processing {title}: {e}")
                continue

            if not matches or matches[0].confidence < threshold:
                result.skipped += 1
                continue

            try:
                self.link_product(entry.id, matches[0].inventory_item.id)
            except DatabaseError as e:
                result.errors.append(f"Failed to link {title}: {e.message}")
                continue

            result.matched += 1

        logger.info(
            "auto_match_complete",
            matched=result.matched,
            skipped=result.skipped,
            errors=len(result.errors)
        )
        return result
