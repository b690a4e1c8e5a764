"""
Vendor dialect names.

A dialect is the JSON shape one family of vendor APIs expects. Several
vendors share a dialect (most third-party aggregators mirror OpenAI), so
rendering code only ever branches on the three names below.
"""
from typing import Dict

OPENAI = "openai"
ANTHROPIC = "anthropic"
GOOGLE = "google"

DIALECTS = (OPENAI, ANTHROPIC, GOOGLE)

# vendor / provider name -> dialect
_ALIASES: Dict[str, str] = {
    "openai": OPENAI,
    "openrouter": OPENAI,
    "xai": OPENAI,
    "grok": OPENAI,
    "mistral": OPENAI,
    "ollama": OPENAI,
    "anthropic": ANTHROPIC,
    "claude": ANTHROPIC,
    "google": GOOGLE,
    "gemini": GOOGLE,
}


def resolve_dialect(name: str) -> str:
    """
    Map a vendor or dialect name to one of the known dialects.
    Unregistered names fall back to the OpenAI-compatible dialect.
    """
    if not name:
        return OPENAI
    return _ALIASES.get(name.lower(), OPENAI)
