from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

# Page identity is the prefixed title, e.g. "Template:Banner".
PageTitle = str


class ContentModel(str, Enum):
    WIKITEXT = "wikitext"
    CSS = "css"
    JAVASCRIPT = "javascript"
    JSON = "json"
    TEXT = "text"


class Confidence(str, Enum):
    SYNTACTIC = "syntactic"
    SEMANTIC = "semantic"


class PolicyDecision(str, Enum):
    ALLOW = "allow"
    REJECT = "reject"
    VETO = "veto"


class EditPhase(str, Enum):
    FORM_RENDERED = "form_rendered"
    NOTICE_COMPUTED = "notice_computed"
    FAST_FILTER_CHECKED = "fast_filter_checked"
    COMMIT_VETO_CHECKED = "commit_veto_checked"
    COMMITTED = "committed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Principal:
    """The acting user. Anonymous principals carry no name."""

    name: str
    groups: frozenset[str] = frozenset()
    anonymous: bool = False

    @classmethod
    def anon(cls) -> "Principal":
        return cls(name="", anonymous=True)


@dataclass(frozen=True)
class EditCandidate:
    """One in-flight edit, alive only until its commit decision is made."""

    raw_content: str
    title: PageTitle
    principal: Principal
    content_model: ContentModel = ContentModel.WIKITEXT


@dataclass(frozen=True)
class DetectionVerdict:
    has_restricted_tag: bool
    confidence: Confidence


@dataclass(frozen=True)
class PermissionVerdict:
    authorized: bool
    permission: str


@dataclass(frozen=True)
class StatusMessage:
    key: str
    text: str
    fatal: bool = False


@dataclass
class EditStatus:
    """Result object of the enclosing save operation.

    Non-fatal errors keep the user on the edit form; a fatal error aborts the
    save outright. Neither is ever raised.
    """

    ok: bool = True
    fatal: bool = False
    messages: list[StatusMessage] = field(default_factory=list)

    def error(self, key: str, text: str = "") -> None:
        self.messages.append(StatusMessage(key=key, text=text or key))
        self.ok = False

    def fatal_error(self, key: str, text: str = "") -> None:
        self.messages.append(StatusMessage(key=key, text=text or key, fatal=True))
        self.ok = False
        self.fatal = True

    @property
    def message_keys(self) -> list[str]:
        return [message.key for message in self.messages]


@dataclass(frozen=True)
class DecisionRecord:
    """Audit entry written for every denial."""

    hook: str
    title: PageTitle
    principal: str
    decision: PolicyDecision
    confidence: Confidence | None = None
    message_key: str | None = None
