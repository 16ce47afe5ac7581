"""Thin async wrapper around an OpenAI-compatible chat completion endpoint."""

import logging
from typing import Optional

from openai import AsyncOpenAI

from sciensaurus.config import LLM_API_KEY, LLM_BASE_URL, LLM_TIMEOUT, SUMMARY_MODEL
from sciensaurus.tracing import Trace, Tracer
from sciensaurus.utils import strip_think_blocks

logger = logging.getLogger(__name__)


def build_client() -> AsyncOpenAI:
    return AsyncOpenAI(base_url=LLM_BASE_URL, api_key=LLM_API_KEY)


class LLMClient:
    """Single-shot chat completions, traced through the injected ``Tracer``."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: str = SUMMARY_MODEL,
        tracer: Optional[Tracer] = None,
    ):
        self.client = client or build_client()
        self.model = model
        self.tracer = tracer or Tracer()

    async def complete(
        self,
        name: str,
        system: str,
        user: str,
        max_tokens: int = 2048,
        temperature: float = 0.3,
        json_mode: bool = False,
        model: Optional[str] = None,
        trace: Optional[Trace] = None,
    ) -> str:
        """Return the stripped text of the first choice.

        Raises whatever the underlying client raises; callers convert to ``Err``.
        """
        model = model or self.model
        messages = [{"role": "system", "content": system}, {"role": "user", "content": user}]
        kwargs = dict(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            timeout=LLM_TIMEOUT,
        )
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        resp = await self.tracer.trace_ai_call(
            name, model, messages,
            lambda: self.client.chat.completions.create(**kwargs),
            trace=trace,
            temperature=temperature, maxTokens=max_tokens,
        )
        content = resp.choices[0].message.content or ""
        return strip_think_blocks(content)
