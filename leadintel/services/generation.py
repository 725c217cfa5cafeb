"""
Summary text generation — Anthropic in production, Ollama locally.

Both providers go through their circuit breaker and carry an explicit
timeout. Every failure surfaces as GenerationError (or CircuitOpenError);
callers in the engine treat either as "fall back to the local summary".
"""
import logging

import requests as http_requests

from leadintel.config import SUMMARY_MAX_TOKENS, SUMMARY_MODEL, SUMMARY_TIMEOUT_SECONDS
from leadintel.services.circuit_breaker import CircuitOpenError, get_breaker

logger = logging.getLogger('services.generation')


class GenerationError(Exception):
    """Generation failed or returned nothing usable."""


def _call_anthropic(prompt, max_tokens, model):
    """Claude via the Anthropic SDK (production)."""
    from leadintel.extensions import anthropic_client
    cb = get_breaker('anthropic')
    response = cb.call(
        anthropic_client.messages.create,
        model=model,
        max_tokens=max_tokens,
        messages=[{"role": "user", "content": prompt}],
        timeout=SUMMARY_TIMEOUT_SECONDS,
    )
    return response.content[0].text


def _call_ollama(prompt, max_tokens):
    """Local Ollama model (development)."""
    from leadintel.config import OLLAMA_URL, OLLAMA_MODEL

    def post():
        resp = http_requests.post(
            f"{OLLAMA_URL}/api/chat",
            json={
                "model": OLLAMA_MODEL,
                "messages": [{"role": "user", "content": prompt}],
                "stream": False,
                "options": {"num_predict": max_tokens},
            },
            timeout=SUMMARY_TIMEOUT_SECONDS,
        )
        resp.raise_for_status()
        return resp

    resp = get_breaker('ollama').call(post)
    return resp.json()["message"]["content"]


def provider_name():
    """'anthropic', 'ollama' or None, in that order of preference."""
    from leadintel.extensions import anthropic_client
    from leadintel.config import OLLAMA_URL
    if anthropic_client is not None:
        return 'anthropic'
    if OLLAMA_URL:
        return 'ollama'
    return None


def generate_summary(prompt, max_tokens=SUMMARY_MAX_TOKENS, model=SUMMARY_MODEL):
    """
    Generate summary text for a prompt.

    Returns:
        Non-empty, stripped text.

    Raises:
        CircuitOpenError: the provider's breaker is open.
        GenerationError:  no provider, transport/HTTP error, timeout,
                          malformed response or empty text.
    """
    provider = provider_name()
    if provider is None:
        raise GenerationError("No generation provider configured")

    try:
        if provider == 'anthropic':
            text = _call_anthropic(prompt, max_tokens, model)
        else:
            text = _call_ollama(prompt, max_tokens)
    except CircuitOpenError:
        raise
    except (KeyError, IndexError, AttributeError, TypeError, ValueError) as e:
        raise GenerationError(f"Malformed {provider} response: {e}") from e
    except Exception as e:
        raise GenerationError(f"{provider} request failed: {e}") from e

    if not isinstance(text, str) or not text.strip():
        raise GenerationError(f"{provider} returned empty text")

    logger.info("Summary generated via %s (%d chars)", provider, len(text))
    return text.strip()
