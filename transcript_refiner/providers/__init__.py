"""Generative-text provider package: async clients and call log.

WHY: Refinement talks to external text-generation services. This
package keeps all vendor HTTP communication in one place behind the
``submit(prompt) -> text`` capability the batching core consumes.

HOW: providers/client.py holds the httpx-based clients, log.py the
bounded call log. PROVIDERS maps CLI/API names to client classes.

RULES:
- All provider HTTP calls go through a BaseProvider subclass
- Authentication keys come from config.load_api_key unless passed in
"""

from __future__ import annotations

from typing import Any, Dict, Type

from transcript_refiner.providers.client import (
    BaseProvider,
    GeminiProvider,
    OpenAIProvider,
    ProviderAuthError,
    ProviderError,
)
from transcript_refiner.providers.log import ApiCallLog

PROVIDERS: Dict[str, Type[BaseProvider]] = {
    "openai": OpenAIProvider,
    "gemini": GeminiProvider,
}


def create_provider(name: str, **kwargs: Any) -> BaseProvider:
    """Instantiate a registered provider by name.

    Raises:
        ValueError: the name is not registered.
    """
    provider_cls = PROVIDERS.get(name)
    if provider_cls is None:
        raise ValueError(
            "Unknown provider '{}'. Available: {}".format(name, ", ".join(sorted(PROVIDERS)))
        )
    return provider_cls(**kwargs)


__all__ = [
    "PROVIDERS",
    "ApiCallLog",
    "BaseProvider",
    "GeminiProvider",
    "OpenAIProvider",
    "ProviderAuthError",
    "ProviderError",
    "create_provider",
]
