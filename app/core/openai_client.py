from openai import AsyncOpenAI
from app.core.config import settings


class OpenAIClientSingleton:
    """
    Singleton pattern for the AI gateway client to avoid multiple initializations.
    The gateway speaks the OpenAI chat-completions protocol.
    """
    _instance = None
    _client = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(OpenAIClientSingleton, cls).__new__(cls)
            cls._client = AsyncOpenAI(
                api_key=settings.AI_GATEWAY_API_KEY or "not-configured",
                base_url=settings.AI_GATEWAY_URL,
            )
        return cls._instance

    @property
    def client(self) -> AsyncOpenAI:
        """Returns the AI gateway async client instance."""
        return self._client


# Global client instance
openai_client = OpenAIClientSingleton().client
