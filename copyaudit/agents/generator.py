# =============================================================================
# RAG Generation — LangGraph Pipeline
# =============================================================================
#
# Generates brand-compliant marketing copy for a topic and platform:
#
#   START → retrieve → compose → generate → END
#
#   retrieve: client-supplied context wins; otherwise ranked brand context
#             for "<topic> <platform>"
#   compose:  system prompt (custom template or default) + context + task
#   generate: a single call on the configured generation provider
#
# Unlike the audit, generation has no fallback chain: a failed call is a
# GenerationError and surfaces to the client as 502.
#
# Collaborators (store, embedder, registry, usage logger) travel in the
# graph state as a `GenerationDeps` object. The graph has no checkpointer,
# so state does not need to be serialisable.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass

from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

from copyaudit.agents.prompts import (
    DEFAULT_GENERATION_SYSTEM,
    GENERATION_TASK,
    NO_GUIDELINES,
)
from copyaudit.services.embedder import Embedder
from copyaudit.services.errors import GenerationError
from copyaudit.services.llm import ProviderRegistry, complete_safely
from copyaudit.services.result import Err
from copyaudit.services.retrieval import retrieve_context
from copyaudit.services.store import DocumentStore
from copyaudit.services.usage import GENERATE_TEXT, UsageLogger

logger = logging.getLogger(__name__)

CLIENT_CONTEXT_SOURCE = "Client Provided Context"


# ---------------------------------------------------------------------------
# State Definition
# ---------------------------------------------------------------------------


@dataclass
class GenerationDeps:
    store: DocumentStore
    embedder: Embedder
    registry: ProviderRegistry
    usage_logger: UsageLogger
    provider: str = "gemini"
    temperature: float = 0.7
    top_k: int = 12
    fallback_limit: int = 10
    primary_boost: float = 0.15


class GenerationState(TypedDict, total=False):
    # --- Input ---
    brand_id: str
    brand_name: str
    topic: str
    platform: str
    language: str
    user_note: str | None
    system_prompt: str | None
    client_context: str | None
    user_id: str | None
    deps: GenerationDeps

    # --- Intermediate ---
    context: str
    citations: list[str]
    prompt: str

    # --- Output ---
    content: str
    model: str
    tokens: int


# ---------------------------------------------------------------------------
# Graph Nodes
# ---------------------------------------------------------------------------


async def retrieve_node(state: GenerationState) -> dict:
    client_context = (state.get("client_context") or "").strip()
    if client_context:
        logger.info("Using client-provided context (%d chars)", len(client_context))
        return {"context": client_context, "citations": [CLIENT_CONTEXT_SOURCE]}

    deps = state["deps"]
    assembled = await retrieve_context(
        state["brand_id"],
        f"{state['topic']} {state['platform']}",
        store=deps.store,
        embedder=deps.embedder,
        top_k=deps.top_k,
        fallback_limit=deps.fallback_limit,
        primary_boost=deps.primary_boost,
    )
    return {"context": assembled.text, "citations": assembled.sources}


async def compose_node(state: GenerationState) -> dict:
    brand_name = state.get("brand_name") or state["brand_id"]
    template = state.get("system_prompt") or DEFAULT_GENERATION_SYSTEM
    # Custom templates may reference {brand_name}; other braces stay literal
    system_prompt = template.replace("{brand_name}", brand_name)

    note = state.get("user_note")
    prompt = GENERATION_TASK.format(
        system_prompt=system_prompt,
        context=state.get("context") or NO_GUIDELINES,
        topic=state["topic"],
        platform=state["platform"],
        language=state["language"],
        user_note=f"Additional note from user: {note}" if note else "",
    )
    return {"prompt": prompt}


async def generate_node(state: GenerationState) -> dict:
    deps = state["deps"]

    lookup = deps.registry.get(deps.provider)
    if isinstance(lookup, Err):
        raise GenerationError(f"Generation provider unavailable: {lookup}")

    outcome = await complete_safely(
        lookup.value,
        deps.provider,
        messages=[{"role": "user", "content": state["prompt"]}],
        temperature=deps.temperature,
    )
    if isinstance(outcome, Err):
        raise GenerationError(f"Generation failed: {outcome}")

    response = outcome.value
    await deps.usage_logger.log(
        state.get("user_id"),
        GENERATE_TEXT,
        response.total_tokens,
        {
            "brand_id": state["brand_id"],
            "topic": state["topic"],
            "platform": state["platform"],
            "model": response.model,
        },
    )
    return {
        "content": response.content,
        "model": response.model,
        "tokens": response.total_tokens,
    }


# ---------------------------------------------------------------------------
# Graph Construction
# ---------------------------------------------------------------------------

_builder = StateGraph(GenerationState)
_builder.add_node("retrieve", retrieve_node)
_builder.add_node("compose", compose_node)
_builder.add_node("generate", generate_node)

_builder.add_edge(START, "retrieve")
_builder.add_edge("retrieve", "compose")
_builder.add_edge("compose", "generate")
_builder.add_edge("generate", END)

graph = _builder.compile()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def generate_content(
    *,
    deps: GenerationDeps,
    brand_id: str,
    topic: str,
    platform: str,
    language: str,
    brand_name: str | None = None,
    user_note: str | None = None,
    system_prompt: str | None = None,
    client_context: str | None = None,
    user_id: str | None = None,
) -> GenerationState:
    """
    Run the generation graph and return its final state.

    Raises:
        GenerationError: The generation provider is unavailable or failed.
    """
    initial_state: GenerationState = {
        "brand_id": brand_id,
        "brand_name": brand_name or brand_id,
        "topic": topic,
        "platform": platform,
        "language": language,
        "user_note": user_note,
        "system_prompt": system_prompt,
        "client_context": client_context,
        "user_id": user_id,
        "deps": deps,
    }

    logger.info(
        "Generating content: brand=%s, topic='%s', platform=%s",
        brand_id, topic[:80], platform,
    )
    result = await graph.ainvoke(initial_state)
    logger.info(
        "Generation complete: model=%s, tokens=%d, citations=%d",
        result.get("model", "n/a"), result.get("tokens", 0),
        len(result.get("citations", [])),
    )
    return result
