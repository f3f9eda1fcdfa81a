"""LiteLLM client wrapper with retry, backoff, and API key validation.

All LLM + embedding calls route through this module.
LiteLLM's built-in retry is used (num_retries=3, exponential backoff).
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from dataclasses import dataclass

import litellm

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


@dataclass
class Completion:
    """Model reply plus the usage counters reported by the provider."""

    content: str
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


def provider_of(model: str) -> str:
    return model.split("/")[0].lower() if "/" in model else "openai"


def provider_env_var(provider: str) -> str | None:
    """Env var holding the API key for *provider*, or None if no key is needed."""
    provider = provider.lower()
    return _PROVIDER_ENV.get(provider, f"{provider.upper()}_API_KEY")


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = provider_of(model)
    env_var = provider_env_var(provider)

    if env_var is None:
        return  # No key required (e.g. ollama)

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def complete(
    model: str,
    messages: list[dict],
    max_tokens: int = 1000,
    temperature: float = 0.2,
    num_retries: int = 3,
) -> Completion:
    """Call litellm.completion() with retry/backoff.

    Returns:
        Completion with the first choice's text and the usage counters
        (zero when the provider reports none).

    Raises:
        litellm.exceptions.APIError: On persistent API failure after retries.
    """
    response = litellm.completion(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
        num_retries=num_retries,
    )
    usage = getattr(response, "usage", None)
    return Completion(
        content=response.choices[0].message.content or "",
        prompt_tokens=int(getattr(usage, "prompt_tokens", 0) or 0),
        completion_tokens=int(getattr(usage, "completion_tokens", 0) or 0),
    )


def complete_stream(
    model: str,
    messages: list[dict],
    max_tokens: int = 1000,
    temperature: float = 0.2,
    num_retries: int = 3,
) -> Iterator[str]:
    """Call litellm.completion(stream=True) and yield the text deltas.

    Chunks without choices or with an empty delta are skipped.
    """
    response = litellm.completion(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
        num_retries=num_retries,
        stream=True,
    )
    for chunk in response:
        if not chunk.choices:
            continue
        delta = chunk.choices[0].delta.content
        if delta:
            yield delta


def embed_texts(model: str, texts: list[str], num_retries: int = 3) -> list[list[float]]:
    """Embed *texts* in one litellm.embedding() call, preserving input order."""
    if not texts:
        return []
    response = litellm.embedding(model=model, input=texts, num_retries=num_retries)
    return [d["embedding"] for d in response.data]
