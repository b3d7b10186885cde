# agents/base_agent.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# The shared foundation for talking to the LLM (our "reasoning service").
# It knows how to:
#
#   1. Send a prompt + system instructions and get plain text back
#   2. Retry with exponential backoff when the provider is overloaded
#   3. Fall back from OpenRouter to Anthropic if OpenRouter fails
#
# It knows NOTHING about emails or plans. The Reasoning Gateway
# (agents/reasoning.py) builds on top of this and adds the JSON parsing
# and plan handling.
#
# MULTI-PROVIDER SUPPORT:
#     1. OpenRouter (primary when OPENROUTER_API_KEY is set). Uses the
#        OpenAI-compatible API, so we talk to it with the OpenAI SDK.
#     2. Anthropic (fallback, or primary when it's the only key). Direct
#        access to Claude.
# ============================================================================

# ── IMPORTS ────────────────────────────────────────────────────────────

import time
import random

# Anthropic SDK
from anthropic import Anthropic

# OpenAI SDK (used for OpenRouter, which has an OpenAI-compatible API)
from openai import OpenAI

from config.settings import (
    OPENROUTER_API_KEY, OPENROUTER_BASE_URL, OPENROUTER_MODEL,
    ANTHROPIC_API_KEY, ANTHROPIC_MODEL, MAX_TOKENS, AGENT_TEMPERATURE,
    ANTHROPIC_RETRYABLE_STATUS, OPENROUTER_RETRYABLE_STATUS,
)
from agents.errors import ReasoningServiceTransientError, ReasoningServiceMalformedOutput


# Which providers are available? OpenRouter is preferred when both are.
USE_OPENROUTER = bool(OPENROUTER_API_KEY)
USE_ANTHROPIC = bool(ANTHROPIC_API_KEY)


# ── SET UP LLM CLIENTS ─────────────────────────────────────────────────

openrouter_client = None
if USE_OPENROUTER:
    openrouter_client = OpenAI(
        base_url=OPENROUTER_BASE_URL,
        api_key=OPENROUTER_API_KEY,
    )

anthropic_client = None
if USE_ANTHROPIC:
    anthropic_client = Anthropic(api_key=ANTHROPIC_API_KEY)

if USE_OPENROUTER:
    print(f"[LLM] Primary provider: OpenRouter ({OPENROUTER_MODEL})")
if USE_ANTHROPIC:
    label = "Fallback" if USE_OPENROUTER else "Primary"
    print(f"[LLM] {label} provider: Anthropic ({ANTHROPIC_MODEL})")
if not USE_OPENROUTER and not USE_ANTHROPIC:
    print("[LLM] WARNING: No LLM API key configured! Set OPENROUTER_API_KEY or ANTHROPIC_API_KEY in .env")


# ── OVERLOAD DETECTION ─────────────────────────────────────────────────

def is_overloaded(error: Exception, retryable_status=ANTHROPIC_RETRYABLE_STATUS) -> bool:
    """
    Decide whether an API error means "busy, try again later".

    Providers signal this in three different ways, so we check all three:
      - an HTTP status like 429 or 529
      - an error body of type "overloaded_error"
      - the word "Overloaded" in the message
    """
    if getattr(error, 'status_code', None) in retryable_status:
        return True

    body = getattr(error, 'body', None)
    if isinstance(body, dict):
        inner = body.get('error', body)
        if isinstance(inner, dict) and inner.get('type') == 'overloaded_error':
            return True

    return 'overloaded' in str(error).lower()


def backoff_delay(attempt: int) -> float:
    """
    Seconds to wait after the `attempt`-th failure (1-based).

    The base delay doubles each time and is capped, then up to
    API_RETRY_JITTER seconds of random jitter is added on top.
    """
    from config.settings import API_RETRY_BASE_DELAY, API_RETRY_MAX_DELAY, API_RETRY_JITTER

    base_delay = min(API_RETRY_BASE_DELAY * (2 ** attempt), API_RETRY_MAX_DELAY)
    return base_delay + random.random() * API_RETRY_JITTER


# ── THE BASE AGENT CLASS ──────────────────────────────────────────────

class BaseAgent:
    """
    The shared LLM-calling foundation.

    Subclasses set `system_prompt` and call `complete()`. Retries,
    backoff and provider fallback are handled here.
    """

    def __init__(self):
        self.system_prompt = "You are a helpful assistant."

        # Optional callback for retry progress.
        # Signature: on_retry(attempt: int, max_retries: int, delay: float)
        self.on_retry = None

    # ── LLM CALL METHODS ─────────────────────────────────────────────

    def _with_retries(self, provider: str, call, retryable_status):
        """
        Run `call()` up to API_MAX_RETRIES times.

        Only overload-type errors are retried. Anything else is raised
        straight away. If every attempt is overloaded we raise
        ReasoningServiceTransientError.
        """
        from config.settings import API_MAX_RETRIES

        for attempt in range(1, API_MAX_RETRIES + 1):
            try:
                return call()
            except Exception as e:
                if not is_overloaded(e, retryable_status):
                    raise

                if attempt >= API_MAX_RETRIES:
                    print(f"   [RETRY] {provider} still overloaded after {API_MAX_RETRIES} attempts")
                    raise ReasoningServiceTransientError(
                        f"{provider} overloaded after {API_MAX_RETRIES} attempts: {e}"
                    ) from e

                delay = backoff_delay(attempt)
                print(f"   [RETRY] {provider} overloaded, waiting {delay:.1f}s "
                      f"(attempt {attempt}/{API_MAX_RETRIES})")

                if self.on_retry:
                    self.on_retry(attempt, API_MAX_RETRIES, delay)

                time.sleep(delay)

        raise RuntimeError(f"{provider} retry loop exited unexpectedly")

    def _call_openrouter(self, prompt: str, system_prompt: str) -> str:
        """Call the LLM via OpenRouter (OpenAI-compatible chat completions)."""
        def call():
            return openrouter_client.chat.completions.create(
                model=OPENROUTER_MODEL,
                max_tokens=MAX_TOKENS,
                temperature=AGENT_TEMPERATURE,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
            )

        response = self._with_retries("OpenRouter", call, OPENROUTER_RETRYABLE_STATUS)
        text = response.choices[0].message.content if response.choices else None
        if not text:
            raise ReasoningServiceMalformedOutput("No text content in OpenRouter response")
        return text.strip()

    def _call_anthropic(self, prompt: str, system_prompt: str) -> str:
        """Call the LLM via the Anthropic Messages API."""
        def call():
            return anthropic_client.messages.create(
                model=ANTHROPIC_MODEL,
                max_tokens=MAX_TOKENS,
                temperature=AGENT_TEMPERATURE,
                system=system_prompt,
                messages=[{"role": "user", "content": [{"type": "text", "text": prompt}]}],
            )

        response = self._with_retries("Anthropic", call, ANTHROPIC_RETRYABLE_STATUS)
        for block in response.content:
            if getattr(block, 'type', None) == "text":
                return block.text.strip()
        raise ReasoningServiceMalformedOutput("No text content in Anthropic response")

    def complete(self, prompt: str, system_prompt: str = None) -> str:
        """
        Send one prompt and return the model's text, with provider fallback.

          1. If OpenRouter is configured, try it first.
          2. If it fails for any reason and Anthropic is configured, use that.
          3. If only Anthropic is configured, use it directly.

        Raises:
            ReasoningServiceTransientError: still overloaded after retries.
            Any other provider error, unchanged.
        """
        system_prompt = system_prompt or self.system_prompt

        if USE_OPENROUTER and openrouter_client:
            try:
                return self._call_openrouter(prompt, system_prompt)
            except Exception as e:
                if USE_ANTHROPIC and anthropic_client:
                    print(f"   [FALLBACK] OpenRouter failed ({e}). Switching to Anthropic.")
                    return self._call_anthropic(prompt, system_prompt)
                raise

        if USE_ANTHROPIC and anthropic_client:
            return self._call_anthropic(prompt, system_prompt)

        raise RuntimeError(
            "No LLM provider available. Set OPENROUTER_API_KEY or ANTHROPIC_API_KEY in .env"
        )
