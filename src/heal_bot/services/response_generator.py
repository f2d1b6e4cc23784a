"""Reply generation: primary provider under a timeout, then canned fallbacks."""

import asyncio
import logging
import random
import zlib
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

from ..errors import ProviderError, ProviderTimeout, ValidationError
from ..models.chat import ChatMessage, Sender
from .circuit_breaker import CircuitBreaker
from .phrasebook import DEFAULT_PHRASEBOOK, Phrasebook

logger = logging.getLogger(__name__)

PRIMARY = "primary"


class ChatProvider(Protocol):
    """Anything that turns chat turns into a reply."""

    name: str

    @property
    def configured(self) -> bool: ...

    async def complete(self, messages: list[dict[str, str]]) -> str: ...


@dataclass
class GeneratedReply:
    """A reply plus the path that produced it."""

    text: str
    provider_used: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_fallback(self) -> bool:
        return self.provider_used.startswith("fallback:")


def render_context(history: Sequence[ChatMessage], window: int) -> list[dict[str, str]]:
    """Render the last ``window`` messages as alternating chat turns."""
    turns = []
    for message in list(history)[-window:] if window > 0 else []:
        role = "user" if message.sender == Sender.USER else "assistant"
        turns.append({"role": role, "content": message.content})
    return turns


class ResponseGenerator:
    """Produces a reply for every well-formed request.

    Provider failures (no credentials, open circuit, timeout, HTTP error,
    malformed payload) are absorbed here and routed to the keyword fallback
    table. Only empty input is reported back to the caller.
    """

    def __init__(
        self,
        provider: ChatProvider | None = None,
        phrasebook: Phrasebook = DEFAULT_PHRASEBOOK,
        timeout: float = 8.0,
        context_window: int = 10,
        breaker: CircuitBreaker | None = None,
        rng: random.Random | None = None,
    ):
        self.provider = provider
        self.phrasebook = phrasebook
        self.timeout = timeout
        self.context_window = context_window
        self.breaker = breaker or CircuitBreaker()
        self.rng = rng

    async def generate(
        self,
        context: Sequence[ChatMessage] | list[dict[str, str]],
        user_text: str,
    ) -> GeneratedReply:
        """
        Generate a reply to ``user_text``.

        Args:
            context: Prior messages, either stored ``ChatMessage`` objects or
                already-rendered ``{"role", "content"}`` turns.
            user_text: The new user message.

        Raises:
            ValidationError: if ``user_text`` is empty.
        """
        if not user_text or not user_text.strip():
            raise ValidationError("Message content is required")

        reason = self._skip_reason()
        if reason is None:
            try:
                text = await self._call_primary(context, user_text)
                self.breaker.record_success()
                return GeneratedReply(
                    text=text,
                    provider_used=PRIMARY,
                    metadata={
                        "providerUsed": PRIMARY,
                        "provider": self.provider.name,
                        "model": getattr(self.provider, "model", None),
                        "phrasebookVersion": self.phrasebook.version,
                    },
                )
            except ProviderTimeout as e:
                logger.warning(f"Provider {e.provider} timed out, falling back: {e}")
                reason = "timeout"
                self.breaker.record_failure()
            except ProviderError as e:
                logger.warning(f"Provider {e.provider} failed, falling back: {e}")
                reason = "error"
                self.breaker.record_failure()

        return self.fallback(user_text, reason)

    def fallback(self, user_text: str, reason: str = "no_credentials") -> GeneratedReply:
        """Select a canned reply from the keyword-routed table."""
        lowered = user_text.lower()
        for rule in self.phrasebook.fallback_rules:
            if rule.matches(lowered):
                return self._fallback_reply(rule.reply, rule.name, reason)

        replies = self.phrasebook.general_replies
        return self._fallback_reply(replies[self._pick(lowered, len(replies))], "general", reason)

    def _skip_reason(self) -> str | None:
        if self.provider is None or not self.provider.configured:
            return "no_credentials"
        if not self.breaker.can_execute():
            return "circuit_open"
        return None

    async def _call_primary(self, context, user_text: str) -> str:
        messages = self._render(context) + [{"role": "user", "content": user_text}]
        try:
            return await asyncio.wait_for(self.provider.complete(messages), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ProviderTimeout(self.provider.name, self.timeout) from e
        except ProviderError:
            raise
        except Exception as e:
            # Anything else the SDK raises is still a provider failure.
            raise ProviderError(self.provider.name, f"unexpected {type(e).__name__}: {e}") from e

    def _render(self, context) -> list[dict[str, str]]:
        items = list(context)
        if items and isinstance(items[0], ChatMessage):
            return render_context(items, self.context_window)
        return items[-self.context_window:] if self.context_window > 0 else []

    def _pick(self, lowered: str, count: int) -> int:
        if self.rng is not None:
            return self.rng.randrange(count)
        return zlib.crc32(" ".join(lowered.split()).encode("utf-8")) % count

    def _fallback_reply(self, text: str, rule: str, reason: str) -> GeneratedReply:
        provider_used = f"fallback:{rule}"
        return GeneratedReply(
            text=text,
            provider_used=provider_used,
            metadata={
                "providerUsed": provider_used,
                "fallbackReason": reason,
                "phrasebookVersion": self.phrasebook.version,
            },
        )
