"""Shared safety and fallback phrase tables.

Both channels read from the same ``Phrasebook`` so that crisis detection and
canned replies cannot drift between the web chat and the USSD menu. Bump
``version`` whenever a list or message changes; it is stamped onto every
reply's metadata.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class FallbackRule:
    """A topic-specific canned reply selected by keyword."""

    name: str
    keywords: tuple[str, ...]
    reply: str

    def matches(self, lowered: str) -> bool:
        return any(keyword in lowered for keyword in self.keywords)


@dataclass(frozen=True)
class Phrasebook:
    version: str
    crisis_keywords: tuple[str, ...]
    crisis_message: str
    ussd_crisis_message: str
    fallback_rules: tuple[FallbackRule, ...]
    general_replies: tuple[str, ...]
    ussd_crisis_message_sw: str = ""


CRISIS_MESSAGE = (
    "I hear how deep your pain is. Your life matters so much. Please reach out right now: "
    "Kenya Mental Health Line: 0800 720 990 | Befrienders Kenya: +254 722 178 177. "
    "You don't have to carry this alone. Will you call one of these numbers? I'm here with you."
)

USSD_CRISIS_MESSAGE = (
    "Your life has value. Kenya Mental Health: 0800 720 990. "
    "Befrienders: +254 722 178 177. You're not alone."
)

USSD_CRISIS_MESSAGE_SW = (
    "Maisha yako yana thamani. Afya ya Akili Kenya: 0800 720 990. "
    "Befrienders: +254 722 178 177. Hauko peke yako."
)

DEFAULT_PHRASEBOOK = Phrasebook(
    version="2024.3",
    crisis_keywords=(
        "suicide",
        "suicidal",
        "kill myself",
        "end it all",
        "hurt myself",
        "self-harm",
        "want to die",
        "kujiua",
        "najiua",
    ),
    crisis_message=CRISIS_MESSAGE,
    ussd_crisis_message=USSD_CRISIS_MESSAGE,
    ussd_crisis_message_sw=USSD_CRISIS_MESSAGE_SW,
    fallback_rules=(
        FallbackRule(
            name="abuse",
            keywords=("abuse", "violence", "hurt", "rape", "assault", "beaten", "forced", "gbv"),
            reply=(
                "I believe you. What happened is not your fault. You deserve safety and support. "
                "Kenya GBV Hotline: 1195 (toll-free, 24/7). FIDA Kenya: 0800 720 187. "
                "You don't have to carry this alone."
            ),
        ),
        FallbackRule(
            name="fear",
            keywords=("scared", "afraid", "fear"),
            reply=(
                "Your fear is valid. Safety comes first. If you're in immediate danger, please call "
                "999 or 1195. I'm here to support you. What would help you feel safer right now?"
            ),
        ),
        FallbackRule(
            name="anxiety",
            keywords=("anxious", "anxiety", "stress", "panic"),
            reply=(
                "Anxiety after trauma is your body trying to protect you. It's exhausting, and you're "
                "doing your best. Grounding can help: Name 5 things you see, 4 you hear, 3 you touch. "
                "Kenya Mental Health: 0800 720 990. Unakwenda vizuri. (You're doing okay.)"
            ),
        ),
        FallbackRule(
            name="depression",
            keywords=("depressed", "depression", "sad", "hopeless", "lonely"),
            reply=(
                "I hear you, and your feelings make sense. Trauma can make everything feel heavy. "
                "You're not alone. Befrienders Kenya: +254 722 178 177. Healthcare Assistance: "
                "+254 719 639 392. Small steps count. Una nguvu. (You have strength.)"
            ),
        ),
    ),
    general_replies=(
        "You've taken a brave step by reaching out. I'm Nia, and I'm here to listen without "
        "judgment. You're safe here. What's on your mind?",
        "I believe you, and I'm here for you. Whatever you share stays between us. "
        "How can I support you today?",
        "Thank you for trusting me with this. Your feelings are completely valid. "
        "What would help you feel more supported right now?",
        "I'm listening. You don't have to go through this alone. Take your time - I'm here. "
        "Uko salama. (You're safe.)",
    ),
)
