"""Decision coordinator: the host-facing hook points.

Each hook is a small policy over three checks:

* :func:`~safer_html_tag.detection.has_restricted_markup`, the cheap scan;
* :class:`~safer_html_tag.permissions.PermissionOracle`, the principal check;
* :class:`~safer_html_tag.expansion.ExpansionHookDetector`, the hooked
  expansion used only by the commit-time veto.

The cheap scan may reject early, but it never approves a commit on its own:
an unauthorized save always goes through the expansion check first.

Hook order for one edit::

    onFormRenderBegin -> onEditNoticesCollected -> onContentMergedFilter -> onPreCommit

``onPrePermissionCheck`` runs on the read side, once per title in a burst.
When raw HTML is disabled globally, every hook allows and records nothing.
"""

from __future__ import annotations

import logging
from collections import deque
from contextlib import contextmanager
from typing import Callable, Iterator, Protocol

from .canonical import to_canonical_json
from .context import DraftStore, RequestContext
from .detection import has_restricted_markup
from .expansion import EngineFactory, ExpansionHookDetector
from .messages import DENIED_EDIT, DENIED_SAVE, NOTICE_HTML_DETECTED, CollectingMessageSink, MessageSink
from .models import (
    Confidence,
    ContentModel,
    DecisionRecord,
    EditStatus,
    PageTitle,
    PolicyDecision,
    Principal,
)
from .permissions import PermissionBurst, PermissionOracle, PermissionStore
from .settings import RuntimeSettings

logger = logging.getLogger(__name__)

EDIT_ACTION = "edit"
_RECENT_DECISIONS = 256


class PageStore(Protocol):
    """Host page storage, consumed at its interface only."""

    def read_stored_content(self, title: PageTitle) -> str | None: ...

    def page_exists(self, title: PageTitle) -> bool: ...

    def is_plain_text_markup_page(self, title: PageTitle) -> bool: ...


class SaferHtmlTag:
    """Gates edits that would output the restricted tag."""

    def __init__(
        self,
        *,
        settings: RuntimeSettings,
        pages: PageStore,
        oracle: PermissionOracle,
        detector: ExpansionHookDetector,
        messages: MessageSink,
        drafts: DraftStore | None = None,
    ) -> None:
        self.settings = settings
        self._pages = pages
        self._oracle = oracle
        self._detector = detector
        self._messages = messages
        self._drafts = drafts if drafts is not None else DraftStore()
        # Recent denials only; the log line is the durable audit trail.
        self.decisions: deque[DecisionRecord] = deque(maxlen=_RECENT_DECISIONS)

    @classmethod
    def from_settings(
        cls,
        settings: RuntimeSettings,
        *,
        pages: PageStore,
        permissions: PermissionStore,
        engine_factory: EngineFactory,
        messages: MessageSink | None = None,
    ) -> "SaferHtmlTag":
        return cls(
            settings=settings,
            pages=pages,
            oracle=PermissionOracle(permissions, settings),
            detector=ExpansionHookDetector.from_settings(engine_factory, settings),
            messages=messages if messages is not None else CollectingMessageSink(),
        )

    @property
    def enabled(self) -> bool:
        return self.settings.raw_html_enabled

    @property
    def drafts(self) -> DraftStore:
        return self._drafts

    def hook_table(self) -> dict[str, Callable[..., object]]:
        """Hook name → bound handler, for registration with the host."""
        return {
            "onFormRenderBegin": self.on_form_render_begin,
            "onEditNoticesCollected": self.on_edit_notices_collected,
            "onContentMergedFilter": self.on_content_merged_filter,
            "onPrePermissionCheck": self.on_pre_permission_check,
            "onPreCommit": self.on_pre_commit,
        }

    @contextmanager
    def permission_burst(self, principal: Principal) -> Iterator[PermissionBurst]:
        burst = PermissionBurst(principal)
        try:
            yield burst
        finally:
            logger.debug("Permission burst for %s closed after %d title(s)", principal.name or "<anon>", len(burst))

    # -- read path ---------------------------------------------------------

    def on_form_render_begin(self, context: RequestContext, textbox: str) -> None:
        if not self.enabled:
            return
        self._drafts.capture(context, textbox)

    def on_edit_notices_collected(self, context: RequestContext, title: PageTitle) -> str | None:
        """Return the notice key to show above the edit form, or None."""
        if not self.enabled:
            return None

        content = self._drafts.take(context)
        if content is None:
            if not self._pages.page_exists(title):
                return None
            content = self._pages.read_stored_content(title)

        if not has_restricted_markup(content):
            return None
        if self._oracle.is_authorized(context.principal):
            return None

        self._messages.emit_warning(NOTICE_HTML_DETECTED)
        return NOTICE_HTML_DETECTED

    def on_pre_permission_check(
        self,
        context: RequestContext,
        title: PageTitle,
        action: str,
        burst: PermissionBurst | None = None,
    ) -> PolicyDecision:
        """Edit eligibility for one title, memoized in ``burst`` when given."""
        if not self.enabled or context.command_line:
            return PolicyDecision.ALLOW
        if action != EDIT_ACTION or not self._pages.page_exists(title):
            return PolicyDecision.ALLOW
        if not self._pages.is_plain_text_markup_page(title):
            return PolicyDecision.ALLOW
        if burst is not None and burst.principal != context.principal:
            raise ValueError(f"Permission burst belongs to {burst.principal.name!r}, not {context.principal.name!r}")

        allowed = burst.get(title) if burst is not None else None
        if allowed is None:
            if self._oracle.is_authorized(context.principal):
                allowed = True
            else:
                allowed = not has_restricted_markup(self._pages.read_stored_content(title))
            if burst is not None:
                burst.put(title, allowed)

        if allowed:
            return PolicyDecision.ALLOW
        self._record(
            "onPrePermissionCheck", title, context.principal, PolicyDecision.REJECT, Confidence.SYNTACTIC, DENIED_EDIT
        )
        return PolicyDecision.REJECT

    # -- write path --------------------------------------------------------

    def on_content_merged_filter(
        self,
        context: RequestContext,
        title: PageTitle,
        content: str,
        status: EditStatus,
    ) -> PolicyDecision:
        """Fast filter: reject visible restricted markup from unauthorized principals."""
        if not self.enabled:
            return PolicyDecision.ALLOW
        if not has_restricted_markup(content):
            return PolicyDecision.ALLOW
        if self._oracle.is_authorized(context.principal):
            return PolicyDecision.ALLOW

        self._messages.emit_error(status, DENIED_EDIT)
        self._record(
            "onContentMergedFilter", title, context.principal, PolicyDecision.REJECT, Confidence.SYNTACTIC, DENIED_EDIT
        )
        return PolicyDecision.REJECT

    def on_pre_commit(
        self,
        context: RequestContext,
        title: PageTitle,
        content: str,
        status: EditStatus,
        content_model: ContentModel = ContentModel.WIKITEXT,
    ) -> PolicyDecision:
        """Commit-time veto: expand the content and refuse if the tag is reachable."""
        if not self.enabled:
            return PolicyDecision.ALLOW
        if self._oracle.is_authorized(context.principal):
            return PolicyDecision.ALLOW
        if not self._detector.expand_and_detect(content, title, content_model=content_model):
            return PolicyDecision.ALLOW

        self._messages.emit_error(status, DENIED_SAVE, fatal=True)
        self._record("onPreCommit", title, context.principal, PolicyDecision.VETO, Confidence.SEMANTIC, DENIED_SAVE)
        return PolicyDecision.VETO

    def _record(
        self,
        hook: str,
        title: PageTitle,
        principal: Principal,
        decision: PolicyDecision,
        confidence: Confidence,
        message_key: str,
    ) -> None:
        record = DecisionRecord(
            hook=hook,
            title=title,
            principal=principal.name or "<anon>",
            decision=decision,
            confidence=confidence,
            message_key=message_key,
        )
        self.decisions.append(record)
        logger.info("Restricted markup denial: %s", to_canonical_json(record))
