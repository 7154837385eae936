"""
AI copywriter for catalog enrichment.

Structured product facts in, SEO title / HTML description / meta
description out. Uses the Anthropic Messages API.
"""

import json
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

import anthropic
import structlog

from config.settings import Settings
from models.catalog import GeneratedContent
from exceptions import ConfigurationError, ContentGenerationError

logger = structlog.get_logger(__name__)

TITLE_MAX_LENGTH = 60
MAX_SPECIFICATIONS = 10

SYSTEM_PROMPT = """You are an expert e-commerce copywriter for an Australian specialist audio retailer.
Write in Australian English. Focus on customer benefits, be professional yet approachable,
and never use unsupported superlatives.

Constraints:
- Product titles MUST be under 60 characters
- Meta descriptions MUST be 150-155 characters and end with a call-to-action
- Keep speaker driver sizes in inches; convert product dimensions to metric

Return ONLY valid JSON with the keys "title", "descriptionHtml" and "metaDescription".
No markdown, no code blocks."""

SPEC_TABLE_INSTRUCTION = (
    ', then <h3>Technical Specifications</h3> with a <table class="specifications-table">'
    ' holding one <tr><th>label</th><td>value</td></tr> row per specification'
)


@dataclass
class CopywriterInput:
    brand: str
    model_number: str
    source_title: str = ""
    source_description: str = ""
    specifications: dict[str, Any] = field(default_factory=dict)
    rrp_aud: Optional[Decimal] = None
    image_count: int = 0


def build_prompt(data: CopywriterInput) -> str:
    specs = "\n".join(
        f"- {key}: {value}"
        for key, value in list(data.specifications.items())[:MAX_SPECIFICATIONS]
    )
    rrp = f"${data.rrp_aud:,.2f} AUD" if data.rrp_aud else "Not specified"
    spec_table = SPEC_TABLE_INSTRUCTION if specs else ""

    return f"""Generate SEO-optimised product content for this Australian e-commerce listing.

PRODUCT INFO:
- Brand: {data.brand}
- Model: {data.model_number}
- RRP: {rrp}

SOURCE DATA (rewrite completely, do not copy):
Title: {data.source_title}
Description: {data.source_description}

SPECIFICATIONS:
{specs or 'No specifications available'}

IMAGES: {data.image_count} product images available

Fields:
1. "title": under 60 characters, format [Brand] [Model] [Category] - [Key Benefit]
2. "metaDescription": 150-155 characters ending with a call-to-action
3. "descriptionHtml": opening <p>, <h3>Key Features</h3> with a <ul> of 4-6 items,
   <h3>Why Choose {data.brand}?</h3> with a paragraph{spec_table}"""


def parse_response(text: str) -> GeneratedContent:
    """
    Parse the model's JSON answer, tolerating code fences and chatter.

    Raises:
        ContentGenerationError: No usable JSON object with a title
    """
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r'^```(?:json)?\s*', '', cleaned)
        cleaned = re.sub(r'\s*```$', '', cleaned)

    match = re.search(r'\{.*\}', cleaned, re.DOTALL)
    if match:
        cleaned = match.group(0)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error("copywriter_json_parse_failed", response_preview=text[:500], error=str(e))
        raise ContentGenerationError(f"Failed to parse AI response: {e}")

    title = (data.get("title") or "").strip() if isinstance(data, dict) else ""
    if not title:
        raise ContentGenerationError("AI response did not include a title")

    if len(title) > TITLE_MAX_LENGTH:
        title = title[:TITLE_MAX_LENGTH - 3] + "..."

    meta = (data.get("metaDescription") or "").strip() or None
    if meta and not 150 <= len(meta) <= 160:
        logger.warning("meta_description_length_off_target", length=len(meta))

    return GeneratedContent(
        title=title,
        description_html=data.get("descriptionHtml") or "",
        meta_description=meta
    )


class Copywriter:
    """Anthropic-backed product copy generator."""

    def __init__(self, settings: Settings, client: Optional[anthropic.AsyncAnthropic] = None):
        self.model = settings.anthropic_model
        self.max_tokens = settings.anthropic_max_tokens
        if client is not None:
            self.client = client
        elif settings.anthropic_api_key:
            self.client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
        else:
            self.client = None

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    async def generate(self, data: CopywriterInput) -> GeneratedContent:
        """
        Raises:
            ConfigurationError: No API key
            ContentGenerationError: API failure or unusable answer
        """
        if self.client is None:
            raise ConfigurationError("anthropic", "AI service not configured")

        logger.info("copywriter_generating", brand=data.brand, model_number=data.model_number)

        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": build_prompt(data)}]
            )
        except anthropic.APIError as e:
            logger.error("copywriter_api_error", error=str(e))
            raise ContentGenerationError(f"AI content generation failed: {e}")

        text = next(
            (block.text for block in response.content if getattr(block, "type", None) == "text"),
            None
        )
        if not text:
            raise ContentGenerationError("No text content in AI response")

        content = parse_response(text)
        logger.info("copywriter_generated", title_length=len(content.title))
        return content
