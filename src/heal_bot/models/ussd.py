"""USSD gateway models and ephemeral session state."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class UssdMenu(str, Enum):
    """Menu states of the USSD conversation."""
    LANGUAGE = "language"
    MAIN = "main"
    CHAT = "chat"
    REPORT_PHONE = "report_phone"
    REPORT_LOCATION = "report_location"
    REPORT_TYPE = "report_type"


class UssdLanguage(str, Enum):
    EN = "en"
    SW = "sw"
    UNSET = "unset"


class UssdRequest(BaseModel):
    """Gateway callback payload (Africa's Talking field names)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: str = Field(..., min_length=1)
    phone_number: str = ""
    text: str = ""


@dataclass
class ReportDraft:
    """Case report fields captured step by step."""

    phone: str | None = None
    location: str | None = None
    abuse_type: str | None = None


@dataclass
class UssdSession:
    """Server-held state for one gateway session. Never persisted."""

    ussd_session_id: str
    phone_number: str
    current_menu: UssdMenu = UssdMenu.LANGUAGE
    language: UssdLanguage = UssdLanguage.UNSET
    report: ReportDraft = field(default_factory=ReportDraft)
    history: list[dict[str, str]] = field(default_factory=list)
    last_seen: float = 0.0


@dataclass(frozen=True)
class CaseReport:
    """A completed report-a-case capture."""

    phone_number: str
    reporter_phone: str
    location: str
    abuse_type: str
    language: UssdLanguage
    reported_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
