# report_assistant/core/llm_client.py
import logging
from typing import Any, Dict, List, Optional

import httpx

from report_assistant.core.config import get_settings
from report_assistant.core.errors import (
    LLMCreditsExhaustedError,
    LLMError,
    LLMRateLimitError,
)

logger = logging.getLogger(__name__)


class LLMClient:
    """
    Thin async client for an OpenAI-compatible chat-completions gateway.

    Two modes:
    - chat(): free-text completion, returns the message content
    - chat_with_tools(): function-calling completion, returns the raw message
      dict so callers can read tool_calls and fall back to content
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.openai.com/v1",
        default_model: str = "gpt-4.1-mini",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.url = base_url.rstrip("/") + "/chat/completions"
        self.default_model = default_model
        self.timeout = timeout
        self._transport = transport

    async def chat(self, messages: List[Dict], model: Optional[str] = None) -> str:
        message = await self._complete({"model": model or self.default_model, "messages": messages})
        return message.get("content") or ""

    async def chat_with_tools(
        self,
        messages: List[Dict],
        tools: List[Dict[str, Any]],
        tool_choice: Any = "auto",
        model: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload = {
            "model": model or self.default_model,
            "messages": messages,
            "tools": tools,
            "tool_choice": tool_choice,
        }
        return await self._complete(payload)

    async def _complete(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(self.url, headers=headers, json=payload)
        except httpx.TimeoutException as exc:
            raise LLMError(f"AI gateway timed out after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise LLMError(f"AI gateway request failed: {exc}") from exc

        if resp.status_code == 429:
            raise LLMRateLimitError("AI gateway rate limit exceeded", status_code=429)
        if resp.status_code == 402:
            raise LLMCreditsExhaustedError("AI gateway credits exhausted", status_code=402)
        if resp.status_code >= 400:
            logger.error("AI gateway error: status=%s body=%s", resp.status_code, resp.text[:500])
            raise LLMError(f"AI gateway error: {resp.status_code}", status_code=resp.status_code)

        try:
            data = resp.json()
            return data["choices"][0]["message"] or {}
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise LLMError("AI gateway returned an unexpected response body") from exc


def build_llm_client() -> LLMClient:
    settings = get_settings()
    return LLMClient(
        api_key=settings.OPENAI_API_KEY,
        base_url=settings.OPENAI_BASE_URL,
        default_model=settings.OPENAI_SQL_MODEL,
        timeout=settings.OPENAI_TIMEOUT_SECONDS,
    )
