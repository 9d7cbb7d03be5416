# =============================================================================
# Unit Tests — Audit Orchestrator
# =============================================================================
#
# Providers are in-process fakes registered on a ProviderRegistry, so the
# tests exercise fallback chains, partial failures, merge order and usage
# accounting without API keys.
# =============================================================================

from __future__ import annotations

import asyncio
import json
from unittest.mock import patch

import pytest

from copyaudit.agents.auditor import (
    AUDIT_PROFILES,
    AgentResult,
    AgentSpec,
    AuditOrchestrator,
    api_error_issue,
    build_orchestrator,
    merge_results,
    run_agent,
)
from copyaudit.agents.prompts import CONTENT_AUDITOR, LANGUAGE_AUDITOR
from copyaudit.services.llm import LLMResponse, ProviderRegistry, ProviderSpec
from copyaudit.services.usage import InMemoryUsageLogger


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _audit_json(summary: str, *issues: dict) -> str:
    return json.dumps({"summary": summary, "identified_issues": list(issues)})


def _issue(category: str, text: str = "x") -> dict:
    return {
        "category": category,
        "severity": "Medium",
        "problematic_text": text,
        "citation": "Rule 1",
        "reason": "because",
        "suggestion": "fix",
    }


class FakeProvider:
    """Records calls; answers with fixed content or raises."""

    def __init__(self, content="", input_tokens=10, output_tokens=5,
                 error: Exception | None = None, delay: float = 0.0,
                 tracker: dict | None = None):
        self.content = content
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.error = error
        self.delay = delay
        self.tracker = tracker
        self.calls: list[dict] = []

    async def complete(self, messages, system=None, temperature=None,
                       max_tokens=None, json_mode=False):
        self.calls.append({
            "messages": messages, "system": system,
            "temperature": temperature, "json_mode": json_mode,
        })
        if self.tracker is not None:
            self.tracker["in_flight"] += 1
            self.tracker["peak"] = max(self.tracker["peak"], self.tracker["in_flight"])
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            if self.tracker is not None:
                self.tracker["in_flight"] -= 1
        if self.error is not None:
            raise self.error
        return LLMResponse(
            content=self.content,
            model="fake-model",
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
        )


def _registry(**providers) -> ProviderRegistry:
    registry = ProviderRegistry({})
    for name, provider in providers.items():
        registry.register(name, provider)
    return registry


def _spec(name="content", providers=("p1", "p2"), categories=("brand", "product"),
          mode="constructed"):
    return AgentSpec(
        name=name,
        categories=categories,
        providers=providers,
        prompt_template=CONTENT_AUDITOR if mode == "constructed" else LANGUAGE_AUDITOR,
        action=f"AUDIT_{name.upper()}",
        user_prompt_mode=mode,
    )


# ---------------------------------------------------------------------------
# Test: Single Agent Fallback Chain
# ---------------------------------------------------------------------------


class TestRunAgent:
    def test_primary_provider_used(self):
        p1 = FakeProvider(_audit_json("fine", _issue("brand")))
        p2 = FakeProvider(_audit_json("unused"))
        result = _run(run_agent(_spec(), "text", None, "English", _registry(p1=p1, p2=p2)))
        assert result.provider == "p1"
        assert result.summary == "fine"
        assert len(result.issues) == 1
        assert p2.calls == []

    def test_falls_back_on_exception(self):
        p1 = FakeProvider(error=TimeoutError("slow"))
        p2 = FakeProvider(_audit_json("from p2"))
        result = _run(run_agent(_spec(), "text", None, "English", _registry(p1=p1, p2=p2)))
        assert result.provider == "p2"
        assert result.summary == "from p2"
        assert result.error is None

    def test_falls_back_on_missing_credentials(self):
        registry = ProviderRegistry({
            "p1": ProviderSpec("p1", "openai_compatible", "model", api_key=""),
        })
        p2 = FakeProvider(_audit_json("from p2"))
        registry.register("p2", p2)
        result = _run(run_agent(_spec(), "text", None, "English", registry))
        assert result.provider == "p2"

    def test_falls_back_on_malformed_output_and_counts_tokens(self):
        p1 = FakeProvider("I refuse to answer in JSON", input_tokens=10, output_tokens=5)
        p2 = FakeProvider(_audit_json("ok"), input_tokens=20, output_tokens=10)
        result = _run(run_agent(_spec(), "text", None, "English", _registry(p1=p1, p2=p2)))
        assert result.provider == "p2"
        assert result.tokens == 45

    def test_chain_exhausted_reports_error(self):
        p2 = FakeProvider(error=ConnectionError("refused"))
        result = _run(run_agent(_spec(), "text", None, "English", _registry(p2=p2)))
        assert result.provider is None
        assert result.issues == []
        assert result.error.startswith("content audit failed:")
        assert "p1" in result.error and "p2" in result.error

    def test_constructed_prompt_sent(self):
        p1 = FakeProvider(_audit_json("ok"))
        _run(run_agent(_spec(), "raw", "PROMPT WITH CONTEXT", "English", _registry(p1=p1)))
        assert p1.calls[0]["messages"] == [{"role": "user", "content": "PROMPT WITH CONTEXT"}]

    def test_raw_text_sent_without_constructed_prompt(self):
        p1 = FakeProvider(_audit_json("ok"))
        _run(run_agent(_spec(), "raw text", None, "English", _registry(p1=p1)))
        assert p1.calls[0]["messages"][0]["content"] == "raw text"

    def test_text_only_agent_ignores_constructed_prompt(self):
        p1 = FakeProvider(_audit_json("ok"))
        spec = _spec(name="language", categories=("language",), mode="text_only")
        _run(run_agent(spec, "raw text", "PROMPT WITH CONTEXT", "English", _registry(p1=p1)))
        content = p1.calls[0]["messages"][0]["content"]
        assert "raw text" in content
        assert "PROMPT WITH CONTEXT" not in content

    def test_system_prompt_carries_language_and_categories(self):
        p1 = FakeProvider(_audit_json("ok"))
        _run(run_agent(_spec(), "t", None, "German", _registry(p1=p1)))
        call = p1.calls[0]
        assert "German" in call["system"]
        assert '"brand" | "product"' in call["system"]
        assert call["json_mode"] is True

    def test_issues_normalised(self):
        raw = json.dumps({
            "summary": "s",
            "identified_issues": [
                {"problematic_text": "No.1", "extra_field": 7},
                "not an issue",
            ],
        })
        p1 = FakeProvider(raw)
        result = _run(run_agent(_spec(), "t", None, "English", _registry(p1=p1)))
        assert len(result.issues) == 1
        issue = result.issues[0]
        assert issue["category"] == "brand"
        assert issue["severity"] == ""
        assert issue["extra_field"] == 7

    def test_issue_fields_coerced_to_text(self):
        raw = _audit_json("s", {
            "category": "brand",
            "severity": 3,
            "citation": ["Rule 1", None, "Rule 4"],
            "reason": True,
        })
        p1 = FakeProvider(raw)
        issue = _run(run_agent(_spec(), "t", None, "English", _registry(p1=p1))).issues[0]
        assert issue["severity"] == "3"
        assert issue["citation"] == "Rule 1, Rule 4"
        assert issue["reason"] == "True"
        assert issue["suggestion"] == ""

    def test_non_list_issues_ignored(self):
        p1 = FakeProvider('{"summary": "s", "identified_issues": "none"}')
        result = _run(run_agent(_spec(), "t", None, "English", _registry(p1=p1)))
        assert result.issues == []
        assert result.summary == "s"


# ---------------------------------------------------------------------------
# Test: Orchestrator
# ---------------------------------------------------------------------------


def _triple(registry, usage=None):
    return AuditOrchestrator(
        AUDIT_PROFILES["triple"], registry, usage or InMemoryUsageLogger(),
    )


class TestAuditOrchestrator:
    def test_merges_in_declaration_order(self):
        # The first agent is the slowest; output order must not change
        registry = _registry(
            deepseek=FakeProvider(_audit_json("logic ok", _issue("legal", "L")), delay=0.05),
            gemini=FakeProvider(_audit_json("brand ok", _issue("brand", "B"))),
            huggingface=FakeProvider(_audit_json("language ok", _issue("language", "G"))),
        )
        outcome = _run(_triple(registry).audit("text", language="English"))
        assert outcome.summary == "logic ok | brand ok | language ok"
        assert [i["problematic_text"] for i in outcome.identified_issues] == ["L", "B", "G"]

    def test_agents_run_concurrently(self):
        tracker = {"in_flight": 0, "peak": 0}
        registry = _registry(
            deepseek=FakeProvider(_audit_json("a"), delay=0.02, tracker=tracker),
            gemini=FakeProvider(_audit_json("b"), delay=0.02, tracker=tracker),
            huggingface=FakeProvider(_audit_json("c"), delay=0.02, tracker=tracker),
        )
        _run(_triple(registry).audit("text"))
        assert tracker["peak"] == 3

    def test_partial_failure_adds_one_diagnostic(self):
        registry = _registry(
            deepseek=FakeProvider(_audit_json("logic ok", _issue("legal"))),
            gemini=FakeProvider(_audit_json("brand ok", _issue("brand"))),
        )
        outcome = _run(_triple(registry).audit("text"))
        diagnostics = [
            i for i in outcome.identified_issues if i["problematic_text"] == "System Warning"
        ]
        assert len(diagnostics) == 1
        assert outcome.identified_issues[-1] is diagnostics[0]
        assert diagnostics[0]["severity"] == "Low"
        assert diagnostics[0]["category"] == "ai_logic"
        assert "language audit failed" in diagnostics[0]["reason"]
        assert outcome.summary == "logic ok | brand ok"

    def test_language_agent_falls_back_to_gemini(self):
        gemini = FakeProvider(_audit_json("gemini answer"))
        registry = _registry(
            deepseek=FakeProvider(_audit_json("logic ok")),
            gemini=gemini,
            huggingface=FakeProvider(error=RuntimeError("503 Service Unavailable")),
        )
        outcome = _run(_triple(registry).audit("text"))
        assert outcome.agents[2].provider == "gemini"
        assert len(gemini.calls) == 2
        assert all(i["problematic_text"] != "System Warning" for i in outcome.identified_issues)

    def test_every_provider_down_still_returns(self):
        outcome = _run(_triple(_registry()).audit("text"))
        assert outcome.summary == ""
        assert len(outcome.identified_issues) == 1
        reason = outcome.identified_issues[0]["reason"]
        assert "logic_legal" in reason and "brand_product" in reason and "language" in reason

    def test_crashing_agent_is_isolated(self):
        registry = _registry(
            deepseek=FakeProvider(_audit_json("a")),
            gemini=FakeProvider(_audit_json("b")),
            huggingface=FakeProvider(_audit_json("c")),
        )
        with patch(
            "copyaudit.agents.auditor.run_agent",
            side_effect=RuntimeError("boom"),
        ):
            outcome = _run(_triple(registry).audit("text"))
        assert len(outcome.identified_issues) == 1
        assert "boom" in outcome.identified_issues[0]["reason"]

    def test_default_language_used(self):
        deepseek = FakeProvider(_audit_json("a"))
        registry = _registry(deepseek=deepseek)
        orchestrator = AuditOrchestrator(
            (_spec(providers=("deepseek",)),), registry, InMemoryUsageLogger(),
            default_language="Vietnamese",
        )
        _run(orchestrator.audit("text"))
        assert "Vietnamese" in deepseek.calls[0]["system"]

    def test_usage_logged_per_agent_action(self):
        usage = InMemoryUsageLogger()
        registry = _registry(
            deepseek=FakeProvider(_audit_json("a"), input_tokens=100, output_tokens=20),
            gemini=FakeProvider(_audit_json("b"), input_tokens=50, output_tokens=10),
            huggingface=FakeProvider(_audit_json("c"), input_tokens=30, output_tokens=5),
        )
        outcome = _run(_triple(registry, usage).audit("text", user_id="user-1"))

        totals = usage.totals("user-1")
        assert totals.breakdown == {
            "AUDIT_LOGIC_LEGAL": 120,
            "AUDIT_BRAND_PRODUCT": 60,
            "AUDIT_LANGUAGE": 35,
        }
        assert totals.total_tokens == outcome.total_tokens == 215
        assert totals.request_count == 3

    def test_tokens_of_failed_attempts_still_logged(self):
        usage = InMemoryUsageLogger()
        orchestrator = AuditOrchestrator(
            (_spec(providers=("p1",)),),
            _registry(p1=FakeProvider("garbage", input_tokens=7, output_tokens=3)),
            usage,
        )
        _run(orchestrator.audit("text", user_id="user-1"))
        assert usage.totals("user-1").breakdown == {"AUDIT_CONTENT": 10}

    def test_anonymous_usage_not_logged(self):
        usage = InMemoryUsageLogger()
        registry = _registry(
            deepseek=FakeProvider(_audit_json("a")),
            gemini=FakeProvider(_audit_json("b")),
            huggingface=FakeProvider(_audit_json("c")),
        )
        _run(_triple(registry, usage).audit("text"))
        assert usage.records == []

    def test_requires_an_agent(self):
        with pytest.raises(ValueError):
            AuditOrchestrator((), _registry(), InMemoryUsageLogger())


class TestProfiles:
    def test_build_known_profiles(self):
        for profile, count in (("triple", 3), ("dual", 2), ("single", 1)):
            orchestrator = build_orchestrator(profile, _registry(), InMemoryUsageLogger())
            assert len(orchestrator.specs) == count

    def test_unknown_profile(self):
        with pytest.raises(ValueError, match="Unknown audit profile"):
            build_orchestrator("quad", _registry(), InMemoryUsageLogger())

    def test_triple_chains(self):
        chains = {s.name: s.providers for s in AUDIT_PROFILES["triple"]}
        assert chains == {
            "logic_legal": ("deepseek", "gemini"),
            "brand_product": ("gemini", "deepseek"),
            "language": ("huggingface", "gemini"),
        }


class TestMerge:
    def test_no_errors_no_diagnostic(self):
        outcome = merge_results([
            AgentResult(name="a", summary="one", issues=[_issue("brand")]),
            AgentResult(name="b", summary="", issues=[]),
        ])
        assert outcome.summary == "one"
        assert len(outcome.identified_issues) == 1

    def test_errors_collapse_into_one_issue(self):
        outcome = merge_results([
            AgentResult(name="a", error="a audit failed: x"),
            AgentResult(name="b", error="b audit failed: y"),
        ])
        assert len(outcome.identified_issues) == 1
        assert outcome.identified_issues[0]["reason"] == (
            "Some audit modules failed: a audit failed: x; b audit failed: y"
        )

    def test_to_result_shape(self):
        outcome = merge_results([AgentResult(name="a", summary="s")])
        assert outcome.to_result() == {"summary": "s", "identified_issues": []}

    def test_api_error_issue(self):
        issue = api_error_issue(RuntimeError("exploded"))
        assert issue["severity"] == "High"
        assert issue["problematic_text"] == "API Error"
        assert "exploded" in issue["reason"]
