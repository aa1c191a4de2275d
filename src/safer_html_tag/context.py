from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

from .models import Principal

logger = logging.getLogger(__name__)

DRAFT_SLOT = "saferhtmltag-pagecontent"


@dataclass(frozen=True)
class RequestContext:
    """Per-request identity threaded through every hook call.

    ``command_line`` marks maintenance/batch execution, where the read-side
    permission gate is not applied.
    """

    principal: Principal
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    command_line: bool = False


class DraftStore:
    """Textbox content captured at form render, keyed by session.

    A new render for the same session overwrites the previous draft; the
    notice computation consumes it. Sessions never see each other's drafts.
    Hosts driving the hooks without :class:`EditLifecycle` call
    :meth:`discard` when an edit ends, or a form that never reaches the notice
    step keeps its draft.
    """

    def __init__(self) -> None:
        self._drafts: dict[tuple[str, str], str] = {}

    def capture(self, context: RequestContext, content: str, *, slot: str = DRAFT_SLOT) -> None:
        self._drafts[(context.session_id, slot)] = content

    def take(self, context: RequestContext, *, slot: str = DRAFT_SLOT) -> str | None:
        return self._drafts.pop((context.session_id, slot), None)

    def peek(self, context: RequestContext, *, slot: str = DRAFT_SLOT) -> str | None:
        return self._drafts.get((context.session_id, slot))

    def discard(self, context: RequestContext) -> None:
        """Drop every draft held for the context's session."""
        for key in [key for key in self._drafts if key[0] == context.session_id]:
            del self._drafts[key]

    def __len__(self) -> int:
        return len(self._drafts)
