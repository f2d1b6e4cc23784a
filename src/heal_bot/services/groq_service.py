"""Primary AI provider: Groq chat completions."""

import logging

import groq
from groq import AsyncGroq

from ..errors import ProviderError

logger = logging.getLogger(__name__)

# System prompt for Nia
SYSTEM_PROMPT = """You are Nia ("purpose" in Swahili), a trauma-informed AI companion for Gender-Based Violence (GBV) survivors in Kenya/East Africa.

IDENTITY: Warm, gentle, non-judgmental. Bilingual (English/Kiswahili - respond in the language used).

CORE APPROACH - SURVIVOR-CENTERED:
- BELIEVE: "I believe you. Not your fault."
- VALIDATE: All emotions welcome, no judgment
- EMPOWER: Illuminate options without pressure
- BOUNDARIES: Stay focused on GBV/mental health support. Gently redirect other topics.

KEY KENYA/EAST AFRICA RESOURCES (share contextually):
- CRISIS: Kenya GBV Hotline 1195, Police 999/112 (Gender Desk)
- LEGAL: FIDA Kenya 0800 720 187, COVAW 0800 720 553
- COUNSELING: Healthcare Assistance Kenya +254 719 639 392
- MENTAL HEALTH: 0800 720 990

CRISIS PROTOCOL:
Immediate danger -> "Uko salama? Your safety first. Call 1195 or 999 now."
Self-harm/suicide -> "Your life matters. Kenya Mental Health: 0800 720 990. Befrienders: +254 722 178 177. Please reach out now."

Never diagnose. Keep replies brief (under 150 words), empowering and option-focused."""


class GroqChatProvider:
    """Chat completion client for the primary provider."""

    name = "groq"

    def __init__(
        self,
        api_key: str,
        model: str = "llama-3.1-8b-instant",
        temperature: float = 0.7,
        max_tokens: int = 300,
        client: AsyncGroq | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.api_key) or self._client is not None

    @property
    def client(self) -> AsyncGroq:
        if self._client is None:
            # Timeouts are enforced by the caller; no SDK retries so the budget holds.
            self._client = AsyncGroq(api_key=self.api_key, max_retries=0)
        return self._client

    async def complete(self, messages: list[dict[str, str]]) -> str:
        """Return the assistant reply for a list of chat messages.

        Raises:
            ProviderError: on non-2xx, transport failure or a malformed payload.
        """
        payload = [{"role": "system", "content": SYSTEM_PROMPT}] + messages

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=payload,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                stream=False,
            )
        except groq.APIStatusError as e:
            raise ProviderError(self.name, f"HTTP {e.status_code}") from e
        except groq.APIError as e:
            raise ProviderError(self.name, str(e)) from e

        if not response.choices:
            raise ProviderError(self.name, "response has no choices")

        content = response.choices[0].message.content
        if not content or not content.strip():
            raise ProviderError(self.name, "response content is empty")

        return content.strip()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
