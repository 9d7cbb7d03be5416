# =============================================================================
# Brand Analyzer — Infer a Brand Profile from a Website
# =============================================================================
#
# PIPELINE:
#   1. fetch_html() with the scraper's scheme / private-address guard
#   2. extract_brand_signals(): title, description, headings, text sample
#   3. One JSON-mode call on the brand analysis provider
#   4. parse_llm_json() → BrandProfile
#
# Unlike the audit agents there is no fallback chain: a missing provider,
# a failed call, unparseable output or a profile without its required
# fields (brandName, tone, summary) raises BrandAnalysisError. Tokens are
# logged as ANALYZE_BRAND as soon as the model has answered.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field

from copyaudit.agents.prompts import BRAND_ANALYST_SYSTEM, brand_analysis_prompt
from copyaudit.services.errors import BrandAnalysisError
from copyaudit.services.llm import ProviderRegistry, complete_safely
from copyaudit.services.output_parser import parse_llm_json
from copyaudit.services.result import Err
from copyaudit.services.scraper import extract_brand_signals, fetch_html
from copyaudit.services.usage import ANALYZE_BRAND, UsageLogger

logger = logging.getLogger(__name__)

_REQUIRED = ("brand_name", "tone", "summary")


@dataclass
class BrandProfile:
    brand_name: str
    tone: str
    summary: str
    industry: str = ""
    target_audience: str = ""
    visual_style: str = ""
    core_values: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    dos: list[str] = field(default_factory=list)
    donts: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class BrandAnalysis:
    url: str
    profile: BrandProfile
    model: str
    tokens: int


async def analyze_brand(
    url: str,
    *,
    registry: ProviderRegistry,
    usage_logger: UsageLogger,
    user_id: str | None = None,
    provider: str = "gemini",
    timeout: float = 20.0,
    max_bytes: int = 5_000_000,
    input_chars: int = 80_000,
) -> BrandAnalysis:
    """
    Scrape `url` and ask the model for the brand's profile.

    Raises:
        ScrapeError: Disallowed URL, fetch failure, or an empty page.
        BrandAnalysisError: Provider unavailable, call failed, or the
            answer is not a usable profile.
    """
    html = await asyncio.to_thread(fetch_html, url, timeout, max_bytes)
    signals = extract_brand_signals(html)

    lookup = registry.get(provider)
    if isinstance(lookup, Err):
        raise BrandAnalysisError(f"Brand analysis provider unavailable: {lookup}")

    outcome = await complete_safely(
        lookup.value,
        provider,
        messages=[{
            "role": "user",
            "content": brand_analysis_prompt(
                signals.title,
                signals.description,
                signals.headings,
                signals.text[:input_chars],
            ),
        }],
        system=BRAND_ANALYST_SYSTEM,
        temperature=0.4,
        json_mode=True,
    )
    if isinstance(outcome, Err):
        raise BrandAnalysisError(f"Brand analysis failed: {outcome}")

    response = outcome.value
    await usage_logger.log(
        user_id,
        ANALYZE_BRAND,
        response.total_tokens,
        {"url": url, "model": response.model},
    )

    parsed = parse_llm_json(response.content)
    if parsed is None:
        raise BrandAnalysisError("Brand analysis returned no JSON profile")

    profile = profile_from_json(parsed)
    logger.info("Analyzed brand %r from %s", profile.brand_name, url)
    return BrandAnalysis(
        url=url,
        profile=profile,
        model=response.model,
        tokens=response.total_tokens,
    )


def profile_from_json(data: dict) -> BrandProfile:
    """Build a profile from camelCase (or snake_case) model output."""
    values = {
        "brand_name": _text(data, "brandName", "brand_name"),
        "tone": _text(data, "tone"),
        "summary": _text(data, "summary"),
        "industry": _text(data, "industry"),
        "target_audience": _text(data, "targetAudience", "target_audience"),
        "visual_style": _text(data, "visualStyle", "visual_style"),
        "core_values": _string_list(data, "coreValues", "core_values"),
        "keywords": _string_list(data, "keywords"),
        "dos": _string_list(data, "dos"),
        "donts": _string_list(data, "donts"),
    }
    missing = [key for key in _REQUIRED if not values[key]]
    if missing:
        raise BrandAnalysisError(
            f"Brand profile is missing required fields: {', '.join(missing)}"
        )
    return BrandProfile(**values)


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _first(data: dict, keys: tuple[str, ...]):
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _text(data: dict, *keys: str) -> str:
    value = _first(data, keys)
    if value is None:
        return ""
    if isinstance(value, list):
        return ", ".join(str(v) for v in value if v is not None)
    return str(value).strip()


def _string_list(data: dict, *keys: str) -> list[str]:
    value = _first(data, keys)
    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, list):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return [str(value)]
