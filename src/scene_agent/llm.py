"""Completion service client used by the planning and observation stages.

Uses the OpenAI Chat Completions API with ``response_format=json_object`` for
both text and vision calls. Model names and the API key come from core.config.
"""
from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any

import openai

from core.config import cfg
from core.errors import ServiceUnavailable

logger = logging.getLogger(__name__)


def _parse_json_response(text: str | None) -> dict[str, Any] | list[Any] | None:
    """Parse completion JSON, tolerating code fences and trailing prose."""
    if not text:
        return None
    fenced = re.findall(r"```(?:json)?\s*([\s\S]*?)```", text, flags=re.IGNORECASE)
    candidates = [block.strip() for block in fenced if block.strip()]
    candidates.append(text.strip())

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
            if isinstance(parsed, (dict, list)):
                return parsed
        except json.JSONDecodeError:
            pass
        start = candidate.find("{")
        if start >= 0:
            try:
                parsed, _ = json.JSONDecoder().raw_decode(candidate[start:])
                if isinstance(parsed, (dict, list)):
                    return parsed
            except json.JSONDecodeError:
                pass
    return None


class CompletionService:
    """Thin async wrapper over the synchronous OpenAI client.

    Returns the parsed JSON object, or None when the reply is not JSON.
    Transport and status failures raise ServiceUnavailable.
    """

    def __init__(self, *, api_key: str | None = None):
        self._api_key = api_key

    def _client(self):
        api_key = self._api_key or cfg.openai_api_key
        if not api_key:
            raise ServiceUnavailable("OPENAI_API_KEY is not configured")
        return openai.OpenAI(api_key=api_key, timeout=cfg.service_timeout)

    async def _chat(self, *, model: str, temperature: float, max_tokens: int, messages: list[dict]) -> str | None:
        client = self._client()

        def _sync_call() -> str | None:
            response = client.chat.completions.create(
                model=model,
                temperature=temperature,
                max_tokens=max_tokens,
                response_format={"type": "json_object"},
                messages=messages,
            )
            return response.choices[0].message.content

        try:
            return await asyncio.to_thread(_sync_call)
        except (openai.APIConnectionError, openai.APITimeoutError, openai.RateLimitError) as exc:
            logger.warning("Completion call failed (model=%s): %s", model, exc)
            raise ServiceUnavailable(f"Completion service unreachable: {exc}", model=model) from exc
        except openai.APIStatusError as exc:
            logger.warning("Completion call returned %s (model=%s)", exc.status_code, model)
            raise ServiceUnavailable(
                f"Completion service error {exc.status_code}", model=model, status_code=exc.status_code,
            ) from exc

    async def complete_json(
        self,
        system: str,
        user: str,
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> dict[str, Any] | list[Any] | None:
        resolved_model = model or cfg.planning_model
        raw = await self._chat(
            model=resolved_model,
            temperature=cfg.planning_temperature if temperature is None else temperature,
            max_tokens=max_tokens or cfg.max_output_tokens,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        )
        return _parse_json_response(raw)

    async def complete_vision(
        self,
        system: str,
        image_b64: str,
        text: str,
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> dict[str, Any] | list[Any] | None:
        resolved_model = model or cfg.vision_model
        raw = await self._chat(
            model=resolved_model,
            temperature=cfg.vision_temperature if temperature is None else temperature,
            max_tokens=max_tokens or cfg.max_output_tokens,
            messages=[
                {"role": "system", "content": system},
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:image/png;base64,{image_b64}", "detail": "high"},
                        },
                        {"type": "text", "text": text},
                    ],
                },
            ],
        )
        return _parse_json_response(raw)
