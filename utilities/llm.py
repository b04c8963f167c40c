import json
import logging
import time
from dataclasses import dataclass
from typing import Optional

import requests

from config import API_KEY, API_URL, LLM_BACKOFF_FACTOR, LLM_RETRIES, LLM_TIMEOUT_SECONDS
from errors import ExternalProviderError, MalformedProviderResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with exponential backoff.

    `retries` is the total number of attempts (not the number of re-tries), so
    `RetryPolicy(retries=1)` means "try once". The wait before re-trying after
    attempt `n` (zero-based) is `backoff_factor ** n` seconds; a factor of 0
    retries without waiting.
    """
    retries: int = LLM_RETRIES
    backoff_factor: int = LLM_BACKOFF_FACTOR

    def delay(self, attempt: int) -> int:
        if self.backoff_factor <= 0:
            return 0
        return self.backoff_factor ** attempt

    def sleep(self, attempt: int) -> None:
        _backoff_sleep(self.delay(attempt))

    def run(self, fn, *args, retry_on=(ExternalProviderError,), label: str = 'call', **kwargs):
        """Call `fn` until it succeeds or the attempts are used up.

        Only exceptions listed in `retry_on` are retried; the last one is
        re-raised unchanged once the budget is exhausted.
        """
        attempts = max(1, self.retries)
        for attempt in range(attempts):
            try:
                return fn(*args, **kwargs)
            except retry_on as e:
                if attempt >= attempts - 1:
                    raise
                logger.warning("%s failed (attempt %d/%d): %s", label, attempt + 1, attempts, e)
                self.sleep(attempt)


def _build_request(prompt: str, json_mode: bool = False):
    """Build request headers and JSON payload for the LLM endpoint.

    The payload matches the structure expected by Google/Gemini-style APIs:
    {
      "contents": [ { "parts": [ { "text": <prompt> } ] } ],
      "generationConfig": { "responseMimeType": "application/json", ... }
    }

    `generationConfig` is only sent in JSON mode, where the model is asked to
    answer with a single JSON document.

    Returns:
        A tuple of (headers, data) ready to pass to requests.post.
    """
    headers = {'Content-Type': 'application/json'}
    data = {'contents': [{'parts': [{'text': prompt}]}]}
    if json_mode:
        data['generationConfig'] = {
            'responseMimeType': 'application/json',
            'temperature': 0.6,
            'maxOutputTokens': 4096,
        }
    return headers, data


def _extract_text(response_json: dict) -> Optional[str]:
    """Extract plain text from a Gemini-style response JSON.

    Expected shape (minimal):
    {
      "candidates": [
        { "content": { "parts": [ { "text": "..." } ] }, "finishReason": "STOP" }
      ]
    }

    Returns None if any of the expected keys/arrays are missing or empty.
    """
    candidates = response_json.get('candidates') or []
    if not candidates:
        return None
    candidate = candidates[0]
    content = candidate.get('content') or {}
    parts = content.get('parts') or []
    if not parts:
        return None
    text = parts[0].get('text')
    return text.strip() if isinstance(text, str) else None


def _finish_reason(response_json: dict) -> Optional[str]:
    candidates = response_json.get('candidates') or []
    return candidates[0].get('finishReason') if candidates else None


def _backoff_sleep(wait_time: int) -> None:
    if wait_time > 0:
        logger.info("Retrying LLM request in %s seconds...", wait_time)
        time.sleep(wait_time)


def call_gemini_api(prompt: str, retries: Optional[int] = None, backoff_factor: Optional[int] = None,
                    json_mode: bool = False, policy: Optional[RetryPolicy] = None) -> str:
    """Call the LLM API with bounded retry and response parsing.

    Behavior:
    - Attempts up to `policy.retries` times.
      * On HTTP 429 or a network error, backs off and retries.
      * On other HTTP errors, fails immediately.
    - On 2xx, extracts the text via `_extract_text()`.

    Raises:
        ExternalProviderError: missing API key, HTTP/network failure, or retries exhausted.
        MalformedProviderResponse: the payload has no text or was cut off by the token limit.
    """
    if policy is None:
        policy = RetryPolicy(
            retries=LLM_RETRIES if retries is None else retries,
            backoff_factor=LLM_BACKOFF_FACTOR if backoff_factor is None else backoff_factor,
        )
    if not API_KEY:
        raise ExternalProviderError("GEMINI_API_KEY is not configured; AI features are disabled.")

    headers, data = _build_request(prompt, json_mode=json_mode)

    for attempt in range(policy.retries):
        try:
            resp = requests.post(API_URL, headers=headers, json=data, timeout=LLM_TIMEOUT_SECONDS)
            resp.raise_for_status()

            payload = resp.json()
            if _finish_reason(payload) == 'MAX_TOKENS':
                raise MalformedProviderResponse("AI response was truncated by the token limit.")
            text = _extract_text(payload)
            if text:
                return text
            raise MalformedProviderResponse(f"Unexpected API response format: {resp.text[:200]}")

        except requests.exceptions.HTTPError as e:
            status = getattr(e.response, 'status_code', None)
            if status == 429 and attempt < policy.retries - 1:
                policy.sleep(attempt)
                continue
            error_text = getattr(e.response, 'text', '') or ''
            raise ExternalProviderError(
                f"AI request failed with status {status}: {error_text[:200]}", status=status
            ) from e

        except requests.RequestException as e:
            if attempt < policy.retries - 1:
                policy.sleep(attempt)
                continue
            raise ExternalProviderError(f"AI request failed: {e}") from e

    raise ExternalProviderError("AI request exhausted retries without a successful response.")


def parse_json_response(text: str) -> dict:
    """Parse a JSON object out of model output, tolerating ```json fences."""
    cleaned = text.strip()
    if cleaned.startswith('```'):
        cleaned = cleaned.strip('`')
        if cleaned.lower().startswith('json'):
            cleaned = cleaned[4:]
    try:
        result = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise MalformedProviderResponse(f"AI response is not valid JSON ({e.msg}).") from e
    if not isinstance(result, dict):
        raise MalformedProviderResponse("AI response JSON is not an object.")
    return result


def generate_structured(prompt: str, label: str = 'generate_structured',
                        policy: Optional[RetryPolicy] = None) -> dict:
    """Ask the model for a single JSON object and return it parsed."""
    logger.info("[LLM] %s: sending prompt (%d chars)", label, len(prompt))
    text = call_gemini_api(prompt, json_mode=True, policy=policy)
    return parse_json_response(text)
