# =============================================================================
# Audit Orchestrator — Concurrent Agents with Provider Fallback Chains
# =============================================================================
#
# A content audit is split across a few agents, each responsible for a
# fixed subset of issue categories and each backed by an ordered provider
# chain (primary first, then fallbacks):
#
#   ┌──────────────┐   deepseek → gemini      ┌──────────────────┐
#   │ logic_legal  │─────────────────────────▶│                  │
#   ├──────────────┤   gemini → deepseek      │  merge in        │
#   │ brand_product│─────────────────────────▶│  declaration     │──▶ {summary,
#   ├──────────────┤   huggingface → gemini   │  order           │     identified_issues}
#   │ language     │─────────────────────────▶│                  │
#   └──────────────┘                          └──────────────────┘
#
# RULES:
# - Agents run as concurrent asyncio tasks; the merge waits for all of them
#   and orders output by declaration, never by completion.
# - Within an agent, a provider attempt fails on missing credentials,
#   transport / HTTP errors, or unparseable output; the next provider in
#   the chain is then tried. These are Result branches, not exceptions.
# - An agent whose whole chain fails contributes no issues and one error
#   string. Any errors produce exactly one low-severity diagnostic issue.
# - audit() never raises; every agent result is materialised first.
# - Tokens from every response received (parseable or not) count toward
#   the agent's usage, logged under the agent's action name.
#
# Historical endpoint variants are configuration, see AUDIT_PROFILES.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

from copyaudit.agents.prompts import (
    BRAND_PRODUCT_AUDITOR,
    CONTENT_AUDITOR,
    FULL_AUDITOR,
    LANGUAGE_AUDITOR,
    LOGIC_LEGAL_AUDITOR,
    audit_system_prompt,
    language_user_prompt,
)
from copyaudit.services.llm import ProviderRegistry, complete_safely
from copyaudit.services.output_parser import parse_llm_json
from copyaudit.services.result import Err
from copyaudit.services.usage import UsageLogger

logger = logging.getLogger(__name__)

ISSUE_FIELDS = (
    "category",
    "severity",
    "problematic_text",
    "citation",
    "reason",
    "suggestion",
)
SUMMARY_SEPARATOR = " | "


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AgentSpec:
    """
    One audit agent.

    `providers[0]` is the primary provider; the rest are tried in order.
    `user_prompt_mode`:
        "constructed": send the caller's constructed prompt (which may
                        embed brand context), or the raw text without one
        "text_only"  : send only the raw text in a fixed review wrapper
    """

    name: str
    categories: tuple[str, ...]
    providers: tuple[str, ...]
    prompt_template: str
    action: str
    user_prompt_mode: Literal["constructed", "text_only"] = "constructed"


@dataclass
class AgentResult:
    name: str
    summary: str = ""
    issues: list[dict] = field(default_factory=list)
    tokens: int = 0
    provider: str | None = None
    error: str | None = None


@dataclass
class AuditOutcome:
    summary: str
    identified_issues: list[dict]
    agents: list[AgentResult] = field(default_factory=list)

    @property
    def total_tokens(self) -> int:
        return sum(a.tokens for a in self.agents)

    def to_result(self) -> dict:
        return {"summary": self.summary, "identified_issues": self.identified_issues}


# ---------------------------------------------------------------------------
# Agent Profiles
# ---------------------------------------------------------------------------

AUDIT_PROFILES: dict[str, tuple[AgentSpec, ...]] = {
    "triple": (
        AgentSpec(
            name="logic_legal",
            categories=("ai_logic", "legal"),
            providers=("deepseek", "gemini"),
            prompt_template=LOGIC_LEGAL_AUDITOR,
            action="AUDIT_LOGIC_LEGAL",
        ),
        AgentSpec(
            name="brand_product",
            categories=("brand", "product"),
            providers=("gemini", "deepseek"),
            prompt_template=BRAND_PRODUCT_AUDITOR,
            action="AUDIT_BRAND_PRODUCT",
        ),
        AgentSpec(
            name="language",
            categories=("language",),
            providers=("huggingface", "gemini"),
            prompt_template=LANGUAGE_AUDITOR,
            action="AUDIT_LANGUAGE",
            user_prompt_mode="text_only",
        ),
    ),
    "dual": (
        AgentSpec(
            name="content",
            categories=("ai_logic", "brand", "product", "legal"),
            providers=("deepseek", "gemini"),
            prompt_template=CONTENT_AUDITOR,
            action="AUDIT_CONTENT",
        ),
        AgentSpec(
            name="language",
            categories=("language",),
            providers=("huggingface",),
            prompt_template=LANGUAGE_AUDITOR,
            action="AUDIT_LANGUAGE",
            user_prompt_mode="text_only",
        ),
    ),
    "single": (
        AgentSpec(
            name="full",
            categories=("ai_logic", "brand", "product", "language"),
            providers=("gemini",),
            prompt_template=FULL_AUDITOR,
            action="AUDIT_CONTENT",
        ),
    ),
}


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class AuditOrchestrator:
    """Runs a fixed, ordered set of agents and merges their output."""

    def __init__(
        self,
        specs: Sequence[AgentSpec],
        registry: ProviderRegistry,
        usage_logger: UsageLogger,
        temperature: float = 0.1,
        default_language: str = "Vietnamese",
    ) -> None:
        if not specs:
            raise ValueError("An audit needs at least one agent")
        self._specs = tuple(specs)
        self._registry = registry
        self._usage = usage_logger
        self._temperature = temperature
        self._default_language = default_language

    @property
    def specs(self) -> tuple[AgentSpec, ...]:
        return self._specs

    async def audit(
        self,
        text: str,
        constructed_prompt: str | None = None,
        language: str | None = None,
        user_id: str | None = None,
    ) -> AuditOutcome:
        """
        Audit `text` with every agent concurrently and merge the results.

        Args:
            text: Raw content under audit.
            constructed_prompt: Full prompt prepared by the caller (content
                plus brand context), used by "constructed" agents.
            language: Target language for suggestions.
            user_id: Verified user to attribute token usage to.
        """
        target_language = language or self._default_language
        logger.info(
            "Audit started: %d agents, %d chars, language=%s",
            len(self._specs), len(text), target_language,
        )

        results = await asyncio.gather(*(
            self._run_isolated(spec, text, constructed_prompt, target_language)
            for spec in self._specs
        ))

        outcome = merge_results(results)

        for spec, result in zip(self._specs, results):
            await self._usage.log(
                user_id,
                spec.action,
                result.tokens,
                {
                    "agent": spec.name,
                    "provider": result.provider,
                    "categories": list(spec.categories),
                    "failed": result.error is not None,
                },
            )

        logger.info(
            "Audit finished: %d issues, %d tokens, %d agent failures",
            len(outcome.identified_issues),
            outcome.total_tokens,
            sum(1 for r in results if r.error),
        )
        return outcome

    async def _run_isolated(
        self,
        spec: AgentSpec,
        text: str,
        constructed_prompt: str | None,
        language: str,
    ) -> AgentResult:
        try:
            return await run_agent(
                spec, text, constructed_prompt, language,
                self._registry, self._temperature,
            )
        except Exception as e:
            # Unexpected bug in one agent must not take down the others
            logger.exception("Agent %s crashed", spec.name)
            return AgentResult(name=spec.name, error=f"{spec.name} audit failed: {e}")


def build_orchestrator(
    profile: str,
    registry: ProviderRegistry,
    usage_logger: UsageLogger,
    temperature: float = 0.1,
    default_language: str = "Vietnamese",
) -> AuditOrchestrator:
    try:
        specs = AUDIT_PROFILES[profile]
    except KeyError:
        raise ValueError(
            f"Unknown audit profile '{profile}'. "
            f"Available: {sorted(AUDIT_PROFILES)}"
        ) from None
    return AuditOrchestrator(
        specs, registry, usage_logger,
        temperature=temperature, default_language=default_language,
    )


# ---------------------------------------------------------------------------
# Agent Execution
# ---------------------------------------------------------------------------


async def run_agent(
    spec: AgentSpec,
    text: str,
    constructed_prompt: str | None,
    language: str,
    registry: ProviderRegistry,
    temperature: float = 0.1,
) -> AgentResult:
    """Walk the agent's provider chain until one yields parseable output."""
    result = AgentResult(name=spec.name)
    system = audit_system_prompt(spec.prompt_template, spec.categories, language)
    if spec.user_prompt_mode == "text_only":
        user_content = language_user_prompt(text)
    else:
        user_content = constructed_prompt or text

    failures: list[str] = []
    for provider_name in spec.providers:
        lookup = registry.get(provider_name)
        if isinstance(lookup, Err):
            failures.append(str(lookup))
            continue

        outcome = await complete_safely(
            lookup.value,
            provider_name,
            messages=[{"role": "user", "content": user_content}],
            system=system,
            temperature=temperature,
            json_mode=True,
        )
        if isinstance(outcome, Err):
            failures.append(str(outcome))
            continue

        response = outcome.value
        result.tokens += response.total_tokens

        parsed = parse_llm_json(response.content)
        if parsed is None:
            failures.append(f"{provider_name}: malformed output")
            continue

        if failures:
            logger.warning(
                "Agent %s fell back to %s after: %s",
                spec.name, provider_name, "; ".join(failures),
            )
        result.provider = provider_name
        result.summary = str(parsed.get("summary") or "").strip()
        result.issues = _normalise_issues(parsed.get("identified_issues"), spec)
        return result

    reasons = "; ".join(failures) or "no providers configured"
    result.error = f"{spec.name} audit failed: {reasons}"
    logger.error("%s", result.error)
    return result


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def merge_results(results: Sequence[AgentResult]) -> AuditOutcome:
    """Merge agent results in the order given."""
    summaries = [r.summary for r in results if r.summary]
    issues = [issue for r in results for issue in r.issues]
    errors = [r.error for r in results if r.error]

    if errors:
        issues.append(diagnostic_issue(errors))

    return AuditOutcome(
        summary=SUMMARY_SEPARATOR.join(summaries),
        identified_issues=issues,
        agents=list(results),
    )


def diagnostic_issue(errors: Sequence[str]) -> dict:
    return {
        "category": "ai_logic",
        "severity": "Low",
        "problematic_text": "System Warning",
        "citation": "System",
        "reason": "Some audit modules failed: " + "; ".join(errors),
        "suggestion": "Re-run the audit; if it keeps failing, check provider credentials.",
    }


def api_error_issue(error: BaseException) -> dict:
    """Single High-severity issue used when the whole audit blew up."""
    return {
        "category": "ai_logic",
        "severity": "High",
        "problematic_text": "API Error",
        "citation": "System",
        "reason": f"The audit could not be completed: {error}",
        "suggestion": "Retry later.",
    }


def _normalise_issues(raw, spec: AgentSpec) -> list[dict]:
    """Keep dict issues; coerce the standard fields to strings."""
    if not isinstance(raw, list):
        return []
    issues = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        issue = dict(item)
        for key in ISSUE_FIELDS:
            issue[key] = _as_text(issue.get(key))
        if not issue["category"]:
            issue["category"] = spec.categories[0]
        issues.append(issue)
    return issues


def _as_text(value) -> str:
    # Models sometimes return a list of citations or a numeric severity
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(_as_text(v) for v in value if v is not None)
    return str(value)
