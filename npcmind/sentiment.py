"""Sentiment classification of player utterances.

A secondary reasoning call labels the tone of what the player said. The label
feeds ``MemoryStore.record_message`` and from there the reputation score.

The classifier never raises: transport failures, timeouts and unparseable
replies all degrade to keyword heuristics, and anything unexpected degrades to
a neutral label.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any, Dict, Optional

from pydantic import ValidationError

from .config import Config
from .errors import ProtocolError, TransportError
from .logging_utils import debug_llm_enabled, log_deterministic, log_error, log_llm, preview
from .schemas import SentimentResult
from .transport import post_json

HOSTILE_TERMS = (
    "hate",
    "stupid",
    "idiot",
    "kill",
    "die",
    "ugly",
    "dumb",
    "shut up",
    "get lost",
    "attack",
    "hurt",
    "destroy",
    "worthless",
    "useless",
)
FRIENDLY_TERMS = (
    "hello",
    "hi",
    "hey",
    "thanks",
    "thank you",
    "please",
    "friend",
    "love",
    "great",
    "awesome",
    "nice",
    "good",
    "help",
    "beautiful",
)

HEURISTIC_CONFIDENCE = 0.6
FALLBACK_CONFIDENCE = 0.3

SENTIMENT_PROMPT = """Analyze the sentiment of this message from a player to an NPC in a game.

Message: "{{message}}"

Respond with ONLY a JSON object in this exact format:
{"label": "<friendly|hostile|threatening|neutral|positive|negative>", "confidence": <0.0-1.0>, "reasoning": "<one short sentence>"}"""

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    return _FENCE_RE.sub("", text.strip()).strip()


def _contains_term(text: str, term: str) -> bool:
    return re.search(rf"\b{re.escape(term)}\b", text) is not None


def heuristic_sentiment(text: str) -> SentimentResult:
    """Label ``text`` by scanning for hostile and friendly terms.

    Hostile terms win over friendly ones; with no match the result is a
    low-confidence neutral.
    """

    lowered = text.lower()
    if any(_contains_term(lowered, term) for term in HOSTILE_TERMS):
        return SentimentResult(
            label="hostile",
            confidence=HEURISTIC_CONFIDENCE,
            reasoning="Message contains hostile language",
        )
    if any(_contains_term(lowered, term) for term in FRIENDLY_TERMS):
        return SentimentResult(
            label="friendly",
            confidence=HEURISTIC_CONFIDENCE,
            reasoning="Message contains friendly language",
        )
    return SentimentResult(
        label="neutral",
        confidence=FALLBACK_CONFIDENCE,
        reasoning="No strong sentiment detected",
    )


def parse_sentiment_reply(body: Dict[str, Any]) -> SentimentResult:
    """Extract a SentimentResult from a chat-completions response body.

    Raises:
        ProtocolError: the body has no message content, or the content is not
            a JSON object matching the result schema
    """

    try:
        content = body["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ProtocolError("Sentiment response has no choices[0].message.content") from exc

    if not isinstance(content, str) or not content.strip():
        raise ProtocolError("Sentiment response content is empty")

    try:
        data = json.loads(strip_code_fences(content))
    except json.JSONDecodeError as exc:
        raise ProtocolError(f"Sentiment content is not JSON: {preview(content, 60)}") from exc

    if not isinstance(data, dict):
        raise ProtocolError("Sentiment content is not a JSON object")

    if isinstance(data.get("label"), str):
        data["label"] = data["label"].strip().lower()
    data["source"] = "service"
    try:
        return SentimentResult.model_validate(data)
    except ValidationError as exc:
        raise ProtocolError(f"Sentiment content failed validation: {exc.error_count()} issues") from exc


class SentimentClassifier:
    """Labels player utterances via an OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        temperature: float = 0.1,
        max_tokens: int = 150,
    ) -> None:
        self.base_url = (base_url or Config.SENTIMENT_BASE_URL).rstrip("/")
        self.model = model or Config.SENTIMENT_MODEL
        self.api_key = api_key if api_key is not None else Config.SENTIMENT_API_KEY
        self.timeout = timeout if timeout is not None else Config.SENTIMENT_TIMEOUT_SECONDS
        self.temperature = temperature
        self.max_tokens = max_tokens

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def build_request(self, text: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": SENTIMENT_PROMPT.replace("{{message}}", text)}],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

    async def classify(self, text: str, agent_id: Optional[str] = None) -> SentimentResult:
        """Return the sentiment of ``text``. Never raises."""

        try:
            return await self._classify(text, agent_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001 - classification must never fail the caller
            log_error(f"Sentiment analysis failed unexpectedly, using neutral: {exc}", agent_id)
            return SentimentResult(label="neutral", confidence=0.0, reasoning="Classification failed")

    async def _classify(self, text: str, agent_id: Optional[str]) -> SentimentResult:
        if not text.strip():
            return SentimentResult(label="neutral", confidence=0.0, reasoning="Empty message")

        if not self.api_key:
            result = heuristic_sentiment(text)
            log_deterministic(f"Sentiment (heuristic): {result.label} ({result.confidence:.2f})", agent_id)
            return result

        payload = self.build_request(text)
        if debug_llm_enabled():
            print(f"[sentiment] request: {json.dumps(payload)}")

        try:
            body = await asyncio.wait_for(
                post_json(
                    self.endpoint,
                    payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    timeout=self.timeout,
                ),
                timeout=self.timeout,
            )
            result = parse_sentiment_reply(body)
        except (TransportError, ProtocolError, asyncio.TimeoutError) as exc:
            result = heuristic_sentiment(text)
            log_error(f"Sentiment service unavailable ({exc}), heuristic says {result.label}", agent_id)
            return result

        if debug_llm_enabled():
            print(f"[sentiment] parsed: {result.model_dump_json()}")
        log_llm(
            f"Sentiment: {result.label} ({result.confidence:.2f}) for \"{preview(text, 40)}\"",
            agent_id,
        )
        return result


__all__ = [
    "SentimentClassifier",
    "heuristic_sentiment",
    "parse_sentiment_reply",
    "strip_code_fences",
]
