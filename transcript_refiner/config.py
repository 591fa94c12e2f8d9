"""Configuration constants, provider defaults, and .env loading.

WHY: Centralizes all configurable values so they are easy to find,
update, and override. Batch sizing, placeholder labels, and provider
defaults are plain data, not buried in the refine loop, so both
humans and coding agents can modify them confidently.

HOW: python-dotenv loads the .env file on import. Constants are defined
as module-level values, each overridable via environment variables.
The load_api_key() function provides a clear error when a key is missing.

RULES:
- BATCH_SIZE bounds the number of segments sent to a provider per call
- CONTEXT_OVERLAP is the number of reference segments carried from the
  preceding batch
- API keys are loaded from .env via python-dotenv, never hardcoded
- All defaults can be overridden via environment variables
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

# Load .env from the project root (where the script is run from)
load_dotenv()

# ---------------------------------------------------------------------------
# Refinement defaults
# ---------------------------------------------------------------------------

BATCH_SIZE = int(os.getenv("REFINE_BATCH_SIZE", "50"))
CONTEXT_OVERLAP = int(os.getenv("REFINE_CONTEXT_OVERLAP", "5"))

# ---------------------------------------------------------------------------
# Placeholder labels
# ---------------------------------------------------------------------------

DEFAULT_SPEAKER = os.getenv("DEFAULT_SPEAKER", "Speaker")
"""Speaker label used when an imported block or record carries none."""

NO_CHANGES_NOTE = "No explanation of changes provided."
FALLBACK_PARSE_NOTE = "Edits applied (recovered with fallback parsing)."

# ---------------------------------------------------------------------------
# Provider defaults
# ---------------------------------------------------------------------------

OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o")
GEMINI_BASE_URL = os.getenv(
    "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
)
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
DEFAULT_PROVIDER = os.getenv("DEFAULT_PROVIDER", "gemini")

PROVIDER_TEMPERATURE = 0.3
PROVIDER_MAX_OUTPUT_TOKENS = 16000

_API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "gemini": "GEMINI_API_KEY",
}


def load_api_key(provider: str) -> str:
    """Load a provider API key from the environment.

    WHY: Every provider call needs a credential. Loading it from the
    environment (via .env) keeps it out of source code.

    HOW: Looks up the provider's env variable name and reads it from
    os.environ (populated by python-dotenv).

    RULES:
    - Raises ValueError for unknown providers
    - Raises ValueError if the key is missing or empty
    - Never returns a default/placeholder value
    """
    env_name = _API_KEY_ENV.get(provider)
    if env_name is None:
        raise ValueError(
            "Unknown provider '{}'. Available: {}".format(
                provider, ", ".join(sorted(_API_KEY_ENV))
            )
        )
    key = os.getenv(env_name, "").strip()
    if not key:
        raise ValueError(
            "{} API key not configured. "
            "Add {} to the .env file in the app folder.".format(provider, env_name)
        )
    return key
