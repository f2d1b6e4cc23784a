"""Web chat turns: crisis interception, reply generation, persistence."""

import logging
from dataclasses import dataclass

from ..errors import ValidationError
from ..models.chat import Channel, ChatMessage, ChatSession, MessageType, Sender
from .crisis_filter import CrisisFilter, CrisisVerdict
from .keyed_lock import KeyedLock
from .response_generator import GeneratedReply, ResponseGenerator
from .session_store import SessionStore

logger = logging.getLogger(__name__)

CRISIS = "crisis"


@dataclass
class ChatTurnResult:
    session: ChatSession
    user_message: ChatMessage
    ai_message: ChatMessage
    response: str


class ChatService:
    """Runs one turn per session at a time for the web channel."""

    def __init__(
        self,
        store: SessionStore,
        generator: ResponseGenerator,
        crisis_filter: CrisisFilter | None = None,
        context_window: int = 10,
    ):
        self.store = store
        self.generator = generator
        self.crisis_filter = crisis_filter or CrisisFilter(generator.phrasebook)
        self.context_window = context_window
        self._turns = KeyedLock()

    async def send_message(
        self,
        owner_key: str,
        session_id: str | None,
        content: str,
        message_type: MessageType = MessageType.TEXT,
    ) -> ChatTurnResult:
        """
        Handle one user message and return the stored turn.

        Raises:
            ValidationError: content is empty.
            NotFound: ``session_id`` is unknown or not owned by ``owner_key``.
        """
        if not content or not content.strip():
            raise ValidationError("Message content is required")

        session = await self.store.get_or_create(session_id, owner_key, channel=Channel.WEB)

        async with self._turns.hold(session.session_id):
            reply = await self._reply(session, content)

            user_message = ChatMessage(
                sender=Sender.USER,
                content=content,
                message_type=message_type,
            )
            ai_message = ChatMessage(
                sender=Sender.AI,
                content=reply.text,
                message_type=MessageType.TEXT,
                metadata={**reply.metadata, "userMessageId": user_message.message_id},
            )
            user_message, ai_message = await self.store.append_turn(
                session.session_id, user_message, ai_message
            )

        session = await self.store.get(session.session_id, owner_key)
        return ChatTurnResult(
            session=session,
            user_message=user_message,
            ai_message=ai_message,
            response=ai_message.content,
        )

    async def _reply(self, session: ChatSession, content: str) -> GeneratedReply:
        if self.crisis_filter.classify(content) is CrisisVerdict.CRISIS:
            logger.warning(f"Crisis indicators detected in session {session.session_id}")
            return GeneratedReply(
                text=self.crisis_filter.crisis_message,
                provider_used=CRISIS,
                metadata={
                    "providerUsed": CRISIS,
                    "phrasebookVersion": self.crisis_filter.phrasebook.version,
                },
            )

        context = await self._recent_history(session.session_id)
        return await self.generator.generate(context, content)

    async def _recent_history(self, session_id: str) -> list[ChatMessage]:
        if self.context_window <= 0:
            return []
        return await self.store.recent(session_id, self.context_window)

    async def get_history(
        self,
        owner_key: str,
        session_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ChatMessage]:
        return await self.store.history(session_id, limit=limit, offset=offset, owner_key=owner_key)

    async def list_sessions(self, owner_key: str, limit: int = 20, offset: int = 0) -> list[ChatSession]:
        return await self.store.list_sessions(owner_key, limit=limit, offset=offset)

    async def delete_session(self, owner_key: str, session_id: str) -> None:
        await self.store.delete(session_id, owner_key)
