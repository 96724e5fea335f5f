from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Protocol

from openai import AsyncOpenAI

from .config import AlignmentSettings, get_settings
from .prompts import get_match_system_prompt, get_match_user_prompt
from .types import AlignmentError, LlmCandidate, TaskLabel


logger = logging.getLogger(__name__)

_FENCED_BLOCK_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


class MatchResolver(Protocol):
    """Resolves missing pairs against a candidate pool.

    Returns the raw ``matches`` entries of the model reply; validation of the
    individual entries happens on the caller side.
    """

    async def resolve(
        self,
        missing: list[dict[str, Any]],
        candidates: list[LlmCandidate],
        *,
        task_label: TaskLabel = "full_text",
    ) -> list[Any]: ...


def _safe_json_object(text: str) -> dict[str, Any] | None:
    try:
        payload = json.loads(text)
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


def extract_json_payload(raw: str | None) -> dict[str, Any] | None:
    """Parse a model reply: plain JSON, then a fenced code block, then the outermost braces."""
    text = str(raw or "").strip()
    if not text:
        return None

    direct = _safe_json_object(text)
    if direct is not None:
        return direct

    fenced = _FENCED_BLOCK_PATTERN.search(text)
    if fenced:
        parsed = _safe_json_object(fenced.group(1).strip())
        if parsed is not None:
            return parsed

    start = text.find("{")
    end = text.rfind("}")
    if start >= 0 and end > start:
        return _safe_json_object(text[start : end + 1])
    return None


class OpenRouterMatchResolver:
    """Production resolver: one chat completion per call against an OpenAI-compatible endpoint.

    Each attempt is bounded by the configured timeout; failed attempts are
    retried with a linearly increasing delay. Exhausted retries raise
    :class:`AlignmentError`.
    """

    def __init__(self, settings: AlignmentSettings | None = None, client: Any | None = None) -> None:
        self._settings = settings or get_settings()
        self._client = client

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client
        api_key = str(self._settings.openrouter_api_key or "").strip()
        if not api_key:
            raise AlignmentError("llm", "llm_credentials_missing", "LLM API key is not configured")
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=self._settings.llm_base_url,
            timeout=self._settings.effective_timeout_seconds,
            max_retries=0,
            default_headers={
                "HTTP-Referer": self._settings.llm_http_referer,
                "X-Title": self._settings.llm_app_title,
            },
        )
        return self._client

    async def _complete(self, client: Any, *, system_prompt: str, user_prompt: str) -> str:
        response = await asyncio.wait_for(
            client.chat.completions.create(
                model=self._settings.llm_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=self._settings.llm_max_tokens,
                temperature=self._settings.llm_temperature,
                stream=False,
            ),
            timeout=self._settings.effective_timeout_seconds,
        )
        choices = getattr(response, "choices", None) or []
        if not choices:
            return ""
        return str(getattr(choices[0].message, "content", "") or "")

    async def resolve(
        self,
        missing: list[dict[str, Any]],
        candidates: list[LlmCandidate],
        *,
        task_label: TaskLabel = "full_text",
    ) -> list[Any]:
        client = self._get_client()
        system_prompt = get_match_system_prompt(task_label)
        user_prompt = get_match_user_prompt(missing=missing, candidates=candidates, task_label=task_label)
        max_retries = self._settings.effective_max_retries
        retry_delay = self._settings.effective_retry_delay_seconds

        failure_details: list[str] = []
        for attempt in range(max_retries + 1):
            if attempt > 0:
                await asyncio.sleep(retry_delay * attempt)
            logger.debug(
                "[DEBUG] bilingual LLM request task=%s attempt=%s missing=%s candidates=%s model=%s",
                task_label,
                attempt + 1,
                len(missing),
                len(candidates),
                self._settings.llm_model,
            )
            try:
                content = await self._complete(client, system_prompt=system_prompt, user_prompt=user_prompt)
            except asyncio.TimeoutError:
                failure_details.append(f"attempt={attempt + 1}; timeout")
                continue
            except Exception as exc:
                failure_details.append(f"attempt={attempt + 1}; request_error={str(exc)[:420]}")
                continue

            payload = extract_json_payload(content)
            if payload is None:
                failure_details.append(f"attempt={attempt + 1}; output_not_json={content[:200]}")
                continue

            matches = payload.get("matches")
            logger.debug("[DEBUG] bilingual LLM success task=%s attempt=%s", task_label, attempt + 1)
            return matches if isinstance(matches, list) else []

        raise AlignmentError(
            "llm",
            "llm_request_failed",
            f"LLM match request failed after {max_retries + 1} attempt(s)",
            detail="\n".join(failure_details)[:1200],
        )
