"""
Memo AI — Chat model client
OpenAI-compatible /chat/completions over httpx, plus the decoding of the
model's JSON answers.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

import httpx
from pydantic import ValidationError

from . import config
from .errors import AIServiceError
from .models import SynthesizedAnswer

logger = logging.getLogger(__name__)


@dataclass
class ChatCompletion:
    content: str
    usage: dict[str, int] | None = None


@dataclass
class DecodedAnswer:
    answer: str
    cited_ids: list[str] = field(default_factory=list)
    structured: bool = False


class ChatClient:
    """Thin chat-completion client. One request per call, no retries."""

    def __init__(
        self,
        base_url: str = config.CHAT_API_URL,
        api_key: str | None = config.CHAT_API_KEY,
        model: str = config.CHAT_MODEL,
        timeout: float = config.CHAT_TIMEOUT,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.model = model
        if http_client is None:
            headers = {"Content-Type": "application/json"}
            if api_key:
                headers["Authorization"] = f"Bearer {api_key}"
            http_client = httpx.Client(base_url=base_url.rstrip("/"), headers=headers, timeout=timeout)
        self._client = http_client

    def close(self) -> None:
        self._client.close()

    def complete(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> ChatCompletion:
        payload: dict[str, Any] = {"model": self.model, "messages": messages, "temperature": temperature}
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        try:
            response = self._client.post("/chat/completions", json=payload)
        except Exception as exc:
            raise AIServiceError(f"Unexpected error: {exc}", code="UNKNOWN_ERROR") from exc

        if not response.is_success:
            detail: Any = None
            try:
                detail = response.json()
            except ValueError:
                detail = response.text[:500]
            raise AIServiceError(
                f"Chat API error: HTTP {response.status_code}",
                code="API_ERROR",
                details={"status": response.status_code, "body": detail},
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise AIServiceError("Chat API returned a non-JSON body", code="UNKNOWN_ERROR") from exc

        choices = body.get("choices") if isinstance(body, dict) else None
        if not choices:
            raise AIServiceError("Chat API returned no choices", code="NO_RESPONSE", details={"response": body})

        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not content or not str(content).strip():
            raise AIServiceError("Chat API returned empty content", code="EMPTY_RESPONSE", details={"response": body})

        return ChatCompletion(content=str(content).strip(), usage=_usage(body.get("usage")))


def _usage(raw: Any) -> dict[str, int] | None:
    if not isinstance(raw, dict):
        return None
    return {
        "promptTokens": raw.get("prompt_tokens", 0),
        "completionTokens": raw.get("completion_tokens", 0),
        "totalTokens": raw.get("total_tokens", 0),
    }


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def decode_answer(text: str) -> DecodedAnswer:
    """
    Two explicit paths:
      structured: text is JSON matching SynthesizedAnswer
      raw:        anything else; the whole text is the answer
    """
    try:
        parsed = SynthesizedAnswer.model_validate_json(_strip_fences(text))
    except ValidationError as exc:
        logger.info("Model answer is not structured JSON (%d errors), using raw text", exc.error_count())
        return DecodedAnswer(answer=text.strip(), structured=False)
    logger.debug("Model answer decoded as structured JSON")
    return DecodedAnswer(answer=parsed.answer, cited_ids=parsed.cited_ids, structured=True)


def decode_json_object(text: str) -> dict[str, Any] | None:
    """Parse a model reply as a JSON object, or None if it is not one."""
    try:
        value = json.loads(_strip_fences(text))
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


@lru_cache(maxsize=1)
def get_chat_client() -> ChatClient:
    logger.info("Chat model %s at %s", config.CHAT_MODEL, config.CHAT_API_URL)
    return ChatClient()
