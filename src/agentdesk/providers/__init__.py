"""Model providers.

Provides:
- httpx chat-completions provider for Kimi/Moonshot endpoints
- OpenAI SDK provider for OpenAI-compatible endpoints
- Credential providers for API keys and OAuth token files
"""

from .base import BaseModelProvider, LLMProviderConfig
from .credentials import StaticCredentialProvider, TokenFileCredentialProvider
from .kimi import KimiProvider
from .openai import OpenAIProvider

__all__ = [
    "BaseModelProvider",
    "LLMProviderConfig",
    "KimiProvider",
    "OpenAIProvider",
    "StaticCredentialProvider",
    "TokenFileCredentialProvider",
]
