from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol, TypedDict

from langgraph.graph import END, START, StateGraph
from langgraph.types import Command

from .context import RequestContext
from .coordinator import SaferHtmlTag
from .models import ContentModel, EditCandidate, EditPhase, EditStatus, PageTitle, PolicyDecision

logger = logging.getLogger(__name__)


class PageWriter(Protocol):
    def save(self, title: PageTitle, content: str, content_model: ContentModel | None = None) -> None: ...


class EditState(TypedDict, total=False):
    context: RequestContext
    candidate: EditCandidate
    draft: str | None
    notice: str | None
    status: EditStatus
    fast_decision: PolicyDecision
    commit_decision: PolicyDecision
    phase: EditPhase
    history: list[EditPhase]
    committed: bool


@dataclass
class LifecycleResult:
    phase: EditPhase
    committed: bool
    notice: str | None
    status: EditStatus
    fast_decision: PolicyDecision | None = None
    commit_decision: PolicyDecision | None = None
    history: list[EditPhase] = field(default_factory=list)


def _advance(state: EditState, phase: EditPhase) -> dict[str, Any]:
    return {"phase": phase, "history": [*state.get("history", []), phase]}


class EditLifecycle:
    """One edit, start to finish: render -> notice -> fast filter -> veto -> commit/reject.

    Either check can end the lifecycle in ``REJECTED``; nothing is retried.
    Drafts left for the session are dropped once the edit is committed or
    rejected.
    """

    def __init__(self, *, coordinator: SaferHtmlTag, writer: PageWriter) -> None:
        self.coordinator = coordinator
        self.writer = writer
        self.graph = self._build_graph().compile()

    def _build_graph(self) -> StateGraph:
        graph = StateGraph(EditState)
        graph.add_node("render_form", self._render_form)
        graph.add_node("compute_notice", self._compute_notice)
        graph.add_node("fast_filter", self._fast_filter)
        graph.add_node("route_fast_filter", self._route_fast_filter)
        graph.add_node("commit_veto", self._commit_veto)
        graph.add_node("route_commit_veto", self._route_commit_veto)
        graph.add_node("commit", self._commit)
        graph.add_node("reject", self._reject)

        graph.add_edge(START, "render_form")
        graph.add_edge("render_form", "compute_notice")
        graph.add_edge("compute_notice", "fast_filter")
        graph.add_edge("fast_filter", "route_fast_filter")
        graph.add_edge("commit_veto", "route_commit_veto")
        graph.add_edge("commit", END)
        graph.add_edge("reject", END)
        return graph

    def _render_form(self, state: EditState) -> dict[str, Any]:
        draft = state.get("draft")
        if draft is not None:
            self.coordinator.on_form_render_begin(state["context"], draft)
        return _advance(state, EditPhase.FORM_RENDERED)

    def _compute_notice(self, state: EditState) -> dict[str, Any]:
        notice = self.coordinator.on_edit_notices_collected(state["context"], state["candidate"].title)
        return {"notice": notice, **_advance(state, EditPhase.NOTICE_COMPUTED)}

    def _fast_filter(self, state: EditState) -> dict[str, Any]:
        candidate = state["candidate"]
        decision = self.coordinator.on_content_merged_filter(
            state["context"], candidate.title, candidate.raw_content, state["status"]
        )
        return {"fast_decision": decision, **_advance(state, EditPhase.FAST_FILTER_CHECKED)}

    def _route_fast_filter(self, state: EditState) -> Command[str]:
        if state["fast_decision"] == PolicyDecision.ALLOW:
            return Command(goto="commit_veto")
        return Command(goto="reject")

    def _commit_veto(self, state: EditState) -> dict[str, Any]:
        candidate = state["candidate"]
        decision = self.coordinator.on_pre_commit(
            state["context"],
            candidate.title,
            candidate.raw_content,
            state["status"],
            candidate.content_model,
        )
        return {"commit_decision": decision, **_advance(state, EditPhase.COMMIT_VETO_CHECKED)}

    def _route_commit_veto(self, state: EditState) -> Command[str]:
        if state["commit_decision"] == PolicyDecision.ALLOW:
            return Command(goto="commit")
        return Command(goto="reject")

    def _commit(self, state: EditState) -> dict[str, Any]:
        candidate = state["candidate"]
        self.writer.save(candidate.title, candidate.raw_content, candidate.content_model)
        self.coordinator.drafts.discard(state["context"])
        logger.info("Committed edit to %s by %s", candidate.title, candidate.principal.name or "<anon>")
        return {"committed": True, **_advance(state, EditPhase.COMMITTED)}

    def _reject(self, state: EditState) -> dict[str, Any]:
        candidate = state["candidate"]
        self.coordinator.drafts.discard(state["context"])
        logger.info(
            "Rejected edit to %s by %s: %s",
            candidate.title,
            candidate.principal.name or "<anon>",
            ", ".join(state["status"].message_keys) or "no reason recorded",
        )
        return {"committed": False, **_advance(state, EditPhase.REJECTED)}

    def run(
        self,
        *,
        context: RequestContext,
        title: PageTitle,
        submitted: str,
        draft: str | None = None,
        content_model: ContentModel = ContentModel.WIKITEXT,
    ) -> LifecycleResult:
        candidate = EditCandidate(
            raw_content=submitted,
            title=title,
            principal=context.principal,
            content_model=content_model,
        )
        result = self.graph.invoke(
            {
                "context": context,
                "candidate": candidate,
                "draft": draft,
                "status": EditStatus(),
                "history": [],
                "committed": False,
            }
        )
        return LifecycleResult(
            phase=result["phase"],
            committed=bool(result.get("committed")),
            notice=result.get("notice"),
            status=result["status"],
            fast_decision=result.get("fast_decision"),
            commit_decision=result.get("commit_decision"),
            history=list(result.get("history", [])),
        )
