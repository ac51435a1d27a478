# ABOUTME: Conversational assistant that answers learner questions through an external LLM service.
# ABOUTME: Builds a sanitized prompt from ability and mastery figures and confines upstream failures.

from __future__ import annotations

import asyncio
import os
import re
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import anthropic
import openai
from loguru import logger

from .catalog import ItemCatalog
from .errors import UpstreamServiceError, ValidationError
from .schemas import LearnerSnapshot

LLM_PROVIDER = os.environ.get("LLM_PROVIDER", "openai")  # "openai" or "anthropic"
LLM_MODEL = os.environ.get("LLM_MODEL")
DEFAULT_MODELS = {"openai": "gpt-4o-mini", "anthropic": "claude-3-haiku-20240307"}
MAX_TOKENS = 300


def sanitize_for_prompt(text: str, max_length: int = 500) -> str:
    """
    Make learner-provided text safe to embed in a prompt.

    Newlines become spaces, non-printable characters are dropped, runs of
    whitespace collapse, and the result is truncated to ``max_length``.
    """
    if not isinstance(text, str):
        text = str(text)
    text = text.replace("\n", " ").replace("\r", " ")
    text = "".join(char for char in text if char.isprintable() or char == " ")
    text = re.sub(r"\s+", " ", text)
    return text[:max_length].strip()


def build_learner_prompt(snapshot: LearnerSnapshot, catalog: ItemCatalog, message: str) -> str:
    """Prompt embedding global ability and per-concept mastery percentages."""
    masteries = ", ".join(
        f"{sanitize_for_prompt(c.label, 60)}: {snapshot.mastery[c.concept_id].value * 100:.0f}%"
        for c in catalog.concepts
    )
    safe_message = sanitize_for_prompt(message)

    return f"""You are CogniPath, a cognitive learning assistant.

## Current Learner Profile
- Global Ability (theta): {snapshot.theta:.2f}
- Concept Masteries: {masteries}
- Cognitive State: {snapshot.cognitive_state.value}

## Learner Message
"{safe_message}"

## Guidelines
1. Be encouraging but data-driven.
2. Reference their specific mastery levels if relevant.
3. Keep responses concise (under 3 sentences).
4. If they ask how to improve, suggest a practice session or the what-if simulator.
"""


class PromptAnswerer(Protocol):
    """Capability that turns a prompt into free text. Raises UpstreamServiceError on failure."""

    async def answer(self, prompt: str) -> str:
        ...


class OpenAIAnswerer:
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.model = model or DEFAULT_MODELS["openai"]

    async def answer(self, prompt: str) -> str:
        if not self.api_key:
            raise UpstreamServiceError("OPENAI_API_KEY not set")
        try:
            client = openai.AsyncOpenAI(api_key=self.api_key)
            response = await client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=0.7,
                max_tokens=MAX_TOKENS,
            )
            content = response.choices[0].message.content
        except Exception as exc:
            raise UpstreamServiceError(f"OpenAI request failed: {exc}") from exc
        if not content:
            raise UpstreamServiceError("OpenAI returned an empty response")
        return content.strip()


class AnthropicAnswerer:
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.model = model or DEFAULT_MODELS["anthropic"]

    async def answer(self, prompt: str) -> str:
        if not self.api_key:
            raise UpstreamServiceError("ANTHROPIC_API_KEY not set")
        try:
            client = anthropic.AsyncAnthropic(api_key=self.api_key)
            response = await client.messages.create(
                model=self.model,
                max_tokens=MAX_TOKENS,
                messages=[{"role": "user", "content": prompt}],
            )
            content = response.content[0].text
        except Exception as exc:
            raise UpstreamServiceError(f"Anthropic request failed: {exc}") from exc
        if not content:
            raise UpstreamServiceError("Anthropic returned an empty response")
        return content.strip()


def answerer_from_env(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
) -> PromptAnswerer:
    provider = (provider or LLM_PROVIDER).lower()
    model = model or LLM_MODEL
    if provider == "anthropic":
        return AnthropicAnswerer(api_key=api_key, model=model)
    if provider == "openai":
        return OpenAIAnswerer(api_key=api_key, model=model)
    raise ValidationError(f"Unknown LLM provider '{provider}'. Use 'openai' or 'anthropic'.")


@dataclass
class AssistantReply:
    text: str
    ok: bool
    error: Optional[str] = None


def diagnostic_message(error: Exception) -> str:
    return (
        "Assistant unavailable.\n"
        f"Reason: {error}\n"
        "Check that LLM_PROVIDER and the matching API key "
        "(OPENAI_API_KEY or ANTHROPIC_API_KEY) are set, then try again."
    )


class LearningAssistant:
    """
    Answers free-text learner questions.

    It only reads snapshots through ``snapshot_provider``; an upstream failure
    is logged and returned as a diagnostic reply instead of being raised.
    """

    def __init__(
        self,
        snapshot_provider: Callable[[], LearnerSnapshot],
        catalog: ItemCatalog,
        answerer: Optional[PromptAnswerer] = None,
    ):
        self.snapshot_provider = snapshot_provider
        self.catalog = catalog
        self.answerer = answerer or answerer_from_env()

    async def ask_async(self, message: str) -> AssistantReply:
        if not message or not message.strip():
            raise ValidationError("Message must not be empty.")
        prompt = build_learner_prompt(self.snapshot_provider(), self.catalog, message)
        try:
            text = await self.answerer.answer(prompt)
        except UpstreamServiceError as exc:
            logger.error(f"Assistant upstream call failed: {exc}")
            return AssistantReply(text=diagnostic_message(exc), ok=False, error=str(exc))
        return AssistantReply(text=text, ok=True)

    def ask(self, message: str) -> AssistantReply:
        """Synchronous wrapper."""
        return asyncio.run(self.ask_async(message))
