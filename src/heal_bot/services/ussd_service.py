"""USSD menu state machine.

Gateways (Africa's Talking) post the whole ``*``-joined input trail on every
request; the menu reacts to the last segment only. Replies must start with
``CON`` (keep the session open) or ``END`` (terminate it).
"""

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from ..models.ussd import CaseReport, ReportDraft, UssdLanguage, UssdMenu, UssdSession
from .crisis_filter import CrisisFilter
from .keyed_lock import KeyedLock
from .response_generator import ResponseGenerator

logger = logging.getLogger(__name__)

ELLIPSIS = "..."

TEXTS = {
    UssdLanguage.EN: {
        "main_menu": "Main Menu:\n\n1. Chat with Nia (AI Therapist)\n2. Get Help Now\n3. Report a Case",
        "invalid_choice": "Invalid choice. Please try again.",
        "chat_greeting": "I'm Nia, your AI therapist.\nWhat's on your mind?",
        "chat_footer": "Reply 0 to return to main menu",
        "help": (
            "EMERGENCY HELP:\n• GBV Hotline: 1195\n• Rescue Center: 0800 720 187\n"
            "• CHV Toll-Free: 0800 720 553"
        ),
        "phone_prompt": "Please enter your phone number:",
        "location_prompt": "Enter your location:",
        "type_prompt": "Type of abuse:\n1. Physical\n2. Sexual",
        "confirmation": "Thank you for reporting. Our team will reach out soon.",
        "goodbye": "Thank you for using HEAL. Stay safe.",
    },
    UssdLanguage.SW: {
        "main_menu": "Karibu kwenye HEAL:\n\n1. Ongea na Nia (AI Msaidizi)\n2. Pata Msaada Sasa\n3. Ripoti Kisa",
        "invalid_choice": "Chaguo si sahihi. Tafadhali jaribu tena.",
        "chat_greeting": "Mimi ni Nia, msaidizi wako wa AI.\nUna nini moyoni?",
        "chat_footer": "Jibu 0 kurudi kwenye menyu kuu",
        "help": (
            "MSAADA WA HARAKA:\n• Hotline ya GBV: 1195\n• Kituo cha Uokoaji: 0800 720 187\n"
            "• CHV Toll Free: 0800 720 553"
        ),
        "phone_prompt": "Tafadhali weka namba yako ya simu:",
        "location_prompt": "Weka eneo lako:",
        "type_prompt": "Aina ya unyanyasaji:\n1. Kimwili\n2. Kingono",
        "confirmation": "Asante kwa kuripoti. Timu yetu itawasiliana nawe hivi karibuni.",
        "goodbye": "Asante kwa kutumia HEAL. Kaa salama.",
    },
}

WELCOME = "Welcome to HEAL - Your GBV Support Platform\n\n1. Continue in English\n2. Switch to Kiswahili"
INVALID_LANGUAGE = "Invalid option.\n\n1. English\n2. Kiswahili"

ABUSE_TYPES = {"1": "Physical", "2": "Sexual"}


def con(text: str) -> str:
    return f"CON {text}"


def end(text: str) -> str:
    return f"END {text}"


def truncate_for_ussd(text: str, max_chars: int = 160) -> str:
    """Fit ``text`` into ``max_chars``, cutting at a word boundary with an ellipsis."""
    text = " ".join(text.split())
    if len(text) <= max_chars:
        return text

    budget = max_chars - len(ELLIPSIS)
    cut = text[:budget]
    if text[budget] != " ":
        space = cut.rfind(" ")
        if space > 0:
            cut = cut[:space]
    return cut.rstrip(" ,;:.-") + ELLIPSIS


@dataclass
class Transition:
    """Result of one menu step. ``next_menu`` of None destroys the session."""

    next_menu: UssdMenu | None
    reply: str

    @property
    def is_terminal(self) -> bool:
        return self.next_menu is None


Matcher = Callable[[str], bool]
Handler = Callable[[UssdSession, str, bool], Awaitable[Transition]]


def equals(*values: str) -> Matcher:
    return lambda user_input: user_input in values


def is_empty(user_input: str) -> bool:
    return user_input == ""


def non_empty(user_input: str) -> bool:
    return user_input != ""


def anything(user_input: str) -> bool:
    return True


class UssdSessionStore:
    """In-memory gateway sessions with per-id locking and idle eviction."""

    def __init__(self, ttl_seconds: float = 180.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._sessions: dict[str, UssdSession] = {}
        self._locks = KeyedLock()

    def lock(self, ussd_session_id: str):
        return self._locks.hold(ussd_session_id)

    def get(self, ussd_session_id: str) -> UssdSession | None:
        self.sweep()
        return self._sessions.get(ussd_session_id)

    def create(self, ussd_session_id: str, phone_number: str) -> UssdSession:
        session = UssdSession(
            ussd_session_id=ussd_session_id,
            phone_number=phone_number,
            last_seen=self.clock(),
        )
        self._sessions[ussd_session_id] = session
        return session

    def touch(self, session: UssdSession) -> None:
        session.last_seen = self.clock()

    def discard(self, ussd_session_id: str) -> None:
        self._sessions.pop(ussd_session_id, None)

    def sweep(self) -> int:
        """Evict idle sessions; returns how many were dropped."""
        now = self.clock()
        expired = [
            key
            for key, session in self._sessions.items()
            if now - session.last_seen > self.ttl_seconds and not self._locks.locked(key)
        ]
        for key in expired:
            del self._sessions[key]
        if expired:
            logger.info(f"Evicted {len(expired)} idle USSD session(s)")
        return len(expired)

    def __contains__(self, ussd_session_id: str) -> bool:
        return ussd_session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


def log_report(report: CaseReport) -> None:
    logger.info(
        f"Case report received: type={report.abuse_type} location={report.location} "
        f"language={report.language.value}"
    )


class UssdService:
    """Drives the USSD menu for every gateway request."""

    def __init__(
        self,
        generator: ResponseGenerator,
        sessions: UssdSessionStore | None = None,
        crisis_filter: CrisisFilter | None = None,
        max_chars: int = 160,
        history_turns: int = 10,
        on_report: Callable[[CaseReport], None] = log_report,
    ):
        self.generator = generator
        self.sessions = sessions or UssdSessionStore()
        self.crisis_filter = crisis_filter or CrisisFilter(generator.phrasebook)
        self.max_chars = max_chars
        self.history_turns = history_turns
        self.on_report = on_report

        self.transitions: dict[UssdMenu, list[tuple[Matcher, Handler]]] = {
            UssdMenu.LANGUAGE: [
                (is_empty, self._welcome),
                (equals("1"), self._choose_english),
                (equals("2"), self._choose_swahili),
                (anything, self._invalid_language),
            ],
            UssdMenu.MAIN: [
                (equals("1"), self._start_chat),
                (equals("2"), self._help_resources),
                (equals("3"), self._start_report),
                (anything, self._invalid_main),
            ],
            UssdMenu.REPORT_PHONE: [(non_empty, self._capture_phone)],
            UssdMenu.REPORT_LOCATION: [(non_empty, self._capture_location)],
            UssdMenu.REPORT_TYPE: [(equals(*ABUSE_TYPES), self._capture_type)],
            UssdMenu.CHAT: [
                (equals("0"), self._back_to_main),
                (is_empty, self._start_chat),
                (anything, self._chat_reply),
            ],
        }

    async def handle(self, ussd_session_id: str, phone_number: str, text: str) -> str:
        """
        Process one gateway request and return the ``CON``/``END`` body.

        A request for an unseen id with a non-empty trail replays the earlier
        segments from the language menu, so a lost or evicted session resumes
        where the gateway thinks it is.
        """
        async with self.sessions.lock(ussd_session_id):
            try:
                return await self._handle_locked(ussd_session_id, phone_number, text or "")
            except Exception:
                logger.exception(f"USSD session {ussd_session_id} failed, ending it")
                self.sessions.discard(ussd_session_id)
                return end(TEXTS[UssdLanguage.EN]["goodbye"])

    async def _handle_locked(self, ussd_session_id: str, phone_number: str, text: str) -> str:
        segments = [segment.strip() for segment in text.split("*")] if text else [""]
        user_input = segments[-1]

        session = self.sessions.get(ussd_session_id)
        if session is None:
            session = self.sessions.create(ussd_session_id, phone_number)
            for segment in segments[:-1]:
                await self._replay(session, segment)

        transition = await self.step(session, user_input)
        if transition.is_terminal:
            self.sessions.discard(ussd_session_id)
            logger.info(f"USSD {ussd_session_id}: {session.current_menu.value} -> END")
        else:
            logger.info(
                f"USSD {ussd_session_id}: {session.current_menu.value} -> {transition.next_menu.value}"
            )
            session.current_menu = transition.next_menu
            self.sessions.touch(session)
        return transition.reply

    async def step(self, session: UssdSession, user_input: str, live: bool = True) -> Transition:
        """Apply one input to ``session`` using the transition table."""
        for matches, handler in self.transitions.get(session.current_menu, []):
            if matches(user_input):
                return await handler(session, user_input, live)
        return Transition(None, end(self._text(session, "goodbye")))

    async def _replay(self, session: UssdSession, segment: str) -> None:
        transition = await self.step(session, segment, live=False)
        if transition.is_terminal:
            # The trail passed an END; whatever follows starts from scratch.
            session.current_menu = UssdMenu.LANGUAGE
            session.language = UssdLanguage.UNSET
            session.report = ReportDraft()
            session.history.clear()
        else:
            session.current_menu = transition.next_menu

    def _text(self, session: UssdSession, key: str) -> str:
        language = UssdLanguage.SW if session.language == UssdLanguage.SW else UssdLanguage.EN
        return TEXTS[language][key]

    def _main_menu(self, session: UssdSession) -> Transition:
        return Transition(UssdMenu.MAIN, con(self._text(session, "main_menu")))

    # Language menu

    async def _welcome(self, session, user_input, live):
        return Transition(UssdMenu.LANGUAGE, con(WELCOME))

    async def _choose_english(self, session, user_input, live):
        session.language = UssdLanguage.EN
        return self._main_menu(session)

    async def _choose_swahili(self, session, user_input, live):
        session.language = UssdLanguage.SW
        return self._main_menu(session)

    async def _invalid_language(self, session, user_input, live):
        return Transition(UssdMenu.LANGUAGE, con(INVALID_LANGUAGE))

    # Main menu

    async def _start_chat(self, session, user_input, live):
        return Transition(UssdMenu.CHAT, con(self._text(session, "chat_greeting")))

    async def _help_resources(self, session, user_input, live):
        return Transition(None, end(self._text(session, "help")))

    async def _start_report(self, session, user_input, live):
        session.report = ReportDraft()
        return Transition(UssdMenu.REPORT_PHONE, con(self._text(session, "phone_prompt")))

    async def _invalid_main(self, session, user_input, live):
        body = f"{self._text(session, 'invalid_choice')}\n{self._text(session, 'main_menu')}"
        return Transition(UssdMenu.MAIN, con(body))

    # Report flow

    async def _capture_phone(self, session, user_input, live):
        session.report.phone = user_input
        return Transition(UssdMenu.REPORT_LOCATION, con(self._text(session, "location_prompt")))

    async def _capture_location(self, session, user_input, live):
        session.report.location = user_input
        return Transition(UssdMenu.REPORT_TYPE, con(self._text(session, "type_prompt")))

    async def _capture_type(self, session, user_input, live):
        session.report.abuse_type = ABUSE_TYPES[user_input]
        if live:
            self.on_report(
                CaseReport(
                    phone_number=session.phone_number,
                    reporter_phone=session.report.phone or "",
                    location=session.report.location or "",
                    abuse_type=session.report.abuse_type,
                    language=session.language,
                )
            )
        return Transition(None, end(self._text(session, "confirmation")))

    # Chat

    async def _back_to_main(self, session, user_input, live):
        return self._main_menu(session)

    async def _chat_reply(self, session, user_input, live):
        if not live:
            return Transition(UssdMenu.CHAT, "")

        if self.crisis_filter.is_crisis(user_input):
            logger.warning(f"Crisis indicators detected in USSD session {session.ussd_session_id}")
            reply = self.crisis_filter.ussd_crisis_message_for(session.language.value)
        else:
            generated = await self.generator.generate(session.history, user_input)
            reply = generated.text

        session.history.append({"role": "user", "content": user_input})
        session.history.append({"role": "assistant", "content": reply})
        del session.history[:-self.history_turns]

        body = f"{truncate_for_ussd(reply, self.max_chars)}\n\n{self._text(session, 'chat_footer')}"
        return Transition(UssdMenu.CHAT, con(body))
