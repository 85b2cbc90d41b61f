"""Reasoning-service protocol layer.

Serializes one decision cycle into a function-calling ``generateContent``
request and normalizes whatever comes back into a ``ReasoningResponse``.

Two response shapes are accepted, each handled by its own adapter:

1. Nested candidates::

    {"candidates": [{"content": {"parts": [{"text": "..."},
                                           {"functionCall": {"name": ..., "args": {...}}}]}}]}

2. Direct::

    {"text": "...", "toolCalls": [{"name": ..., "args": {...}}]}

   (``functionCalls`` is accepted as an alias of ``toolCalls``.)

Transport failures raise ``TransportError`` after retries; shape mismatches
raise an adapter-specific ``ProtocolError`` that ``parse_response`` logs and
turns into ``None``.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence

from pydantic import Field, ValidationError
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt

from ..config import Config
from ..errors import CandidatesShapeError, DirectShapeError, ProtocolError, TransportError
from ..logging_utils import debug_llm_enabled, log_error, log_llm, preview
from ..schemas import (
    CamelModel,
    ConversationEntry,
    GenerationParams,
    ReasoningResponse,
    ToolCall,
    ToolDeclaration,
)
from ..transport import post_json


class ConversationTurn(CamelModel):
    role: Literal["user", "model"]
    text: str


class ReasoningRequest(CamelModel):
    """Canonical request for one decision cycle."""

    conversation_history: List[ConversationTurn] = Field(default_factory=list)
    current_message: str
    generation_params: GenerationParams = Field(default_factory=GenerationParams)
    tool_declarations: List[ToolDeclaration] = Field(default_factory=list)
    system_instruction: str = ""

    def to_wire(self) -> Dict[str, Any]:
        """Return the ``generateContent`` JSON body."""

        contents = [{"role": turn.role, "parts": [{"text": turn.text}]} for turn in self.conversation_history]
        contents.append({"role": "user", "parts": [{"text": self.current_message}]})

        body: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": self.generation_params.model_dump(by_alias=True),
        }
        if self.tool_declarations:
            body["tools"] = [
                {
                    "functionDeclarations": [
                        {"name": tool.name, "description": tool.description, "parameters": tool.parameters}
                        for tool in self.tool_declarations
                    ]
                }
            ]
        if self.system_instruction:
            body["systemInstruction"] = {"parts": [{"text": self.system_instruction}]}
        return body


def history_from_memory(entries: Sequence[ConversationEntry]) -> List[ConversationTurn]:
    """Map remembered conversation entries onto request turns."""
    return [
        ConversationTurn(role="user" if entry.role == "player" else "model", text=entry.content)
        for entry in entries
    ]


# ============================================================================
# Response adapters
# ============================================================================


class CandidatesResponseAdapter:
    """Normalizes the nested ``candidates[0].content.parts`` shape."""

    key = "candidates"

    def matches(self, body: Mapping[str, Any]) -> bool:
        return self.key in body

    def parse(self, body: Mapping[str, Any]) -> Optional[ReasoningResponse]:
        candidates = body[self.key]
        if not isinstance(candidates, list):
            raise CandidatesShapeError("'candidates' is not a list")
        if not candidates:
            return None

        candidate = candidates[0]
        if not isinstance(candidate, dict):
            raise CandidatesShapeError("candidate is not an object")
        content = candidate.get("content")
        if content is None:
            return None
        if not isinstance(content, dict):
            raise CandidatesShapeError("candidate content is not an object")
        parts = content.get("parts")
        if not parts:
            return None
        if not isinstance(parts, list):
            raise CandidatesShapeError("content parts is not a list")

        texts: List[str] = []
        calls: List[ToolCall] = []
        for index, part in enumerate(parts):
            if not isinstance(part, dict):
                raise CandidatesShapeError(f"part {index} is not an object")
            if "functionCall" in part:
                call = part["functionCall"]
                if not isinstance(call, dict) or not isinstance(call.get("name"), str):
                    raise CandidatesShapeError(f"part {index} has a malformed functionCall")
                args = call.get("args")
                if args is not None and not isinstance(args, dict):
                    raise CandidatesShapeError(f"part {index} functionCall args is not an object")
                calls.append(ToolCall(name=call["name"], args=args))
            elif isinstance(part.get("text"), str) and part["text"]:
                texts.append(part["text"])

        return ReasoningResponse(text=" ".join(texts).strip(), tool_calls=calls)


class DirectResponseAdapter:
    """Normalizes the flat ``{text, toolCalls}`` shape."""

    call_keys = ("toolCalls", "functionCalls")

    def matches(self, body: Mapping[str, Any]) -> bool:
        return any(key in body for key in self.call_keys) or "text" in body

    def parse(self, body: Mapping[str, Any]) -> Optional[ReasoningResponse]:
        text = body.get("text") or ""
        if not isinstance(text, str):
            raise DirectShapeError("'text' is not a string")

        raw_calls: Any = []
        for key in self.call_keys:
            if body.get(key) is not None:
                raw_calls = body[key]
                break
        if not isinstance(raw_calls, list):
            raise DirectShapeError("tool calls is not a list")

        try:
            calls = [ToolCall.model_validate(call) for call in raw_calls]
        except ValidationError as exc:
            raise DirectShapeError(f"malformed tool call ({exc.error_count()} issues)") from exc

        return ReasoningResponse(text=text.strip(), tool_calls=calls)


RESPONSE_ADAPTERS = (CandidatesResponseAdapter(), DirectResponseAdapter())


def parse_response(body: Mapping[str, Any], agent_id: Optional[str] = None) -> Optional[ReasoningResponse]:
    """Normalize a response body. Returns None when nothing usable came back."""

    for adapter in RESPONSE_ADAPTERS:
        if not adapter.matches(body):
            continue
        try:
            return adapter.parse(body)
        except ProtocolError as exc:
            log_error(f"Reasoning response rejected ({type(exc).__name__}): {exc}", agent_id)
            return None

    log_error("Reasoning response has neither candidates nor tool calls", agent_id)
    return None


# ============================================================================
# Client
# ============================================================================


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, TransportError) and exc.retryable


class ReasoningClient:
    """Talks to the reasoning service. One instance can serve every agent."""

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        auth_mode: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        generation_params: Optional[GenerationParams] = None,
    ) -> None:
        self.base_url = (base_url or Config.REASONING_BASE_URL).rstrip("/")
        self.model = model or Config.REASONING_MODEL
        self.api_key = api_key if api_key is not None else Config.REASONING_API_KEY
        self.auth_mode = (auth_mode or Config.REASONING_AUTH_MODE).lower()
        if self.auth_mode not in Config.SUPPORTED_AUTH_MODES:
            raise ValueError(f"auth_mode must be 'query' or 'bearer', got '{self.auth_mode}'")
        self.timeout = timeout if timeout is not None else Config.REASONING_TIMEOUT_SECONDS
        self.max_attempts = max(1, max_attempts if max_attempts is not None else Config.REASONING_MAX_ATTEMPTS)
        self.generation_params = generation_params or GenerationParams()

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/{self.model}:generateContent"

    def _url_and_headers(self) -> tuple[str, Dict[str, str]]:
        if not self.api_key:
            return self.endpoint, {}
        if self.auth_mode == "bearer":
            return self.endpoint, {"Authorization": f"Bearer {self.api_key}"}
        return f"{self.endpoint}?key={self.api_key}", {}

    def build_request(
        self,
        *,
        system_instruction: str,
        current_message: str,
        history: Sequence[ConversationEntry] = (),
        tool_declarations: Sequence[ToolDeclaration] = (),
    ) -> ReasoningRequest:
        return ReasoningRequest(
            conversation_history=history_from_memory(history),
            current_message=current_message,
            generation_params=self.generation_params,
            tool_declarations=list(tool_declarations),
            system_instruction=system_instruction,
        )

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        url, headers = self._url_and_headers()
        try:
            return await asyncio.wait_for(
                post_json(url, payload, headers=headers, timeout=self.timeout),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise TransportError(f"Reasoning request timed out after {self.timeout}s", retryable=True) from exc

    async def generate(self, request: ReasoningRequest, agent_id: Optional[str] = None) -> Optional[ReasoningResponse]:
        """Send ``request`` and return the normalized response (None if unusable).

        Raises:
            TransportError: the service could not be reached or answered non-2xx
                after all attempts
        """

        payload = request.to_wire()
        if debug_llm_enabled():
            print(f"[reasoning] system instruction:\n{request.system_instruction}")
            print(f"[reasoning] current message:\n{request.current_message}")

        log_llm(
            f"Calling {self.model} ({len(payload['contents'])} turns, "
            f"{len(request.tool_declarations)} tools)",
            agent_id,
        )

        attempt_number = 0
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self.max_attempts),
            reraise=True,
        ):
            with attempt:
                attempt_number += 1
                if attempt_number > 1:
                    log_error(f"Reasoning retry {attempt_number}/{self.max_attempts}", agent_id)
                body = await self._post(payload)

        if debug_llm_enabled():
            print(f"[reasoning] raw response: {json.dumps(body)[:2000]}")

        response = parse_response(body, agent_id)
        if response is not None:
            names = [call.name for call in response.tool_calls]
            log_llm(
                f"Response: text=\"{preview(response.text, 60)}\" tool_calls={names or 'none'}",
                agent_id,
            )
        return response


__all__ = [
    "CandidatesResponseAdapter",
    "ConversationTurn",
    "DirectResponseAdapter",
    "ReasoningClient",
    "ReasoningRequest",
    "history_from_memory",
    "parse_response",
]
