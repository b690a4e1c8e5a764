from .openai import OpenAIProvider


class OllamaProvider(OpenAIProvider):
    """Local Ollama server through its OpenAI-compatible endpoint."""
    name = "ollama"
    default_base_url = "http://localhost:11434/v1"

    def __init__(self, api_key: str = "ollama", base_url: str = None):
        super().__init__(api_key=api_key, base_url=base_url)
