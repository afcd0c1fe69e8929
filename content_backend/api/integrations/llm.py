from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Dict, Optional

import requests

from ..settings import read_int_env

logger = logging.getLogger("content_backend.integrations")

RETRYABLE_STATUS_CODES = {408, 409, 429, 500, 502, 503, 504, 529}


class LLMError(RuntimeError):
    def __init__(self, message: str, *, status_code: Optional[int] = None, transient: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.transient = transient


def extract_json(text: str) -> Dict[str, Any]:
    """Pull the first JSON object out of a model reply.

    Models sometimes wrap the object in a markdown fence or add a sentence
    before it, so the outermost braces are tried when a straight parse fails.
    """
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```(?:json)?\s*", "", cleaned, flags=re.IGNORECASE)
        cleaned = re.sub(r"\s*```$", "", cleaned)
    for candidate in (cleaned, _outer_braces(cleaned)):
        if not candidate:
            continue
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return parsed
    raise LLMError("LLM returned invalid JSON.")


def _outer_braces(text: str) -> Optional[str]:
    first = text.find("{")
    last = text.rfind("}")
    if first >= 0 and last > first:
        return text[first:last + 1]
    return None


def _post(url: str, headers: Dict[str, str], payload: Dict[str, Any], timeout_seconds: int) -> Dict[str, Any]:
    try:
        response = requests.post(url, headers=headers, json=payload, timeout=timeout_seconds)
    except requests.Timeout as exc:
        raise LLMError(f"LLM request timed out: {exc}", transient=True) from exc
    except requests.RequestException as exc:
        raise LLMError(f"LLM request failed: {exc}", transient=True) from exc

    if response.status_code >= 400:
        raise LLMError(
            f"LLM HTTP {response.status_code}: {response.text[:400]}",
            status_code=response.status_code,
            transient=response.status_code in RETRYABLE_STATUS_CODES,
        )
    try:
        body = response.json()
    except ValueError as exc:
        raise LLMError("LLM returned non-JSON response.") from exc
    if not isinstance(body, dict):
        raise LLMError("LLM returned an unexpected payload.")
    return body


def _anthropic_text(
    *,
    system_prompt: str,
    user_prompt: str,
    api_key: str,
    base_url: str,
    model: str,
    timeout_seconds: int,
    max_tokens: int,
    temperature: float,
) -> str:
    body = _post(
        base_url.rstrip("/") + "/messages",
        {
            "x-api-key": api_key,
            "anthropic-version": "2023-06-01",
            "Content-Type": "application/json",
        },
        {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
        },
        timeout_seconds,
    )
    texts = [
        block["text"].strip()
        for block in body.get("content") or []
        if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str)
    ]
    texts = [text for text in texts if text]
    if not texts:
        raise LLMError("LLM response missing content.")
    return "\n".join(texts)


def _openai_text(
    *,
    system_prompt: str,
    user_prompt: str,
    api_key: str,
    base_url: str,
    model: str,
    timeout_seconds: int,
    max_tokens: int,
    temperature: float,
) -> str:
    body = _post(
        base_url.rstrip("/") + "/chat/completions",
        {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
        {
            "model": model,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        },
        timeout_seconds,
    )
    choices = body.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        message = choices[0].get("message")
        if isinstance(message, dict) and message.get("content"):
            return str(message["content"])
    raise LLMError("LLM response missing content.")


def call_llm_json(
    *,
    system_prompt: str,
    user_prompt: str,
    api_key: str,
    base_url: str,
    model: str,
    timeout_seconds: int,
    max_tokens: int = 4000,
    temperature: float = 0.7,
) -> Dict[str, Any]:
    if not api_key:
        raise LLMError("ANTHROPIC_API_KEY is not set.")
    is_anthropic = "anthropic" in (base_url or "").lower() or model.strip().lower().startswith("claude")
    call = _anthropic_text if is_anthropic else _openai_text
    retries = read_int_env("PIPELINE_LLM_RETRIES", 2)
    backoff_seconds = float(read_int_env("PIPELINE_LLM_RETRY_BACKOFF_SECONDS", 2))

    last_error: Optional[LLMError] = None
    for attempt in range(retries + 1):
        try:
            raw = call(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                api_key=api_key,
                base_url=base_url,
                model=model,
                timeout_seconds=timeout_seconds,
                max_tokens=max_tokens,
                temperature=temperature,
            )
            return extract_json(raw)
        except LLMError as exc:
            last_error = exc
            if attempt >= retries or not exc.transient:
                break
            sleep_seconds = backoff_seconds * (2 ** attempt)
            logger.warning(
                "integrations.llm.retry attempt=%s/%s sleep=%.1fs error=%s",
                attempt + 1,
                retries + 1,
                sleep_seconds,
                exc,
            )
            time.sleep(sleep_seconds)

    raise last_error or LLMError("LLM request failed.")
