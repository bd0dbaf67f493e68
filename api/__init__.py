# API module - External API integration framework
# One client per service, secrets isolated

from .client import APIClient, APIConfig, APIResponse, APIStatus
from .gemini import GeminiCloud, create_gemini_client

__all__ = [
    "APIClient", "APIConfig", "APIResponse", "APIStatus",
    "GeminiCloud", "create_gemini_client",
]
