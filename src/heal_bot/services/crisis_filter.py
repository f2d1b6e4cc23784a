"""Synchronous crisis keyword interception."""

from enum import Enum

from .phrasebook import DEFAULT_PHRASEBOOK, Phrasebook


class CrisisVerdict(str, Enum):
    SAFE = "safe"
    CRISIS = "crisis"


class CrisisFilter:
    """Flags self-harm indicators before any provider is contacted.

    Pure and side-effect free: the verdict depends only on the text and the
    phrasebook, never on provider availability.
    """

    def __init__(self, phrasebook: Phrasebook = DEFAULT_PHRASEBOOK):
        self.phrasebook = phrasebook

    def classify(self, text: str) -> CrisisVerdict:
        lowered = text.lower()
        for keyword in self.phrasebook.crisis_keywords:
            if keyword in lowered:
                return CrisisVerdict.CRISIS
        return CrisisVerdict.SAFE

    def is_crisis(self, text: str) -> bool:
        return self.classify(text) is CrisisVerdict.CRISIS

    @property
    def crisis_message(self) -> str:
        return self.phrasebook.crisis_message

    @property
    def ussd_crisis_message(self) -> str:
        return self.phrasebook.ussd_crisis_message

    def ussd_crisis_message_for(self, language: str) -> str:
        """Short crisis message in ``language`` ("en" or "sw"), English when missing."""
        if language == "sw" and self.phrasebook.ussd_crisis_message_sw:
            return self.phrasebook.ussd_crisis_message_sw
        return self.phrasebook.ussd_crisis_message
