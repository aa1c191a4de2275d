"""Authoritative check: does the content, once fully expanded, reach ``<html>``?

The syntactic scan in :mod:`safer_html_tag.detection` can be dodged by
building the tag out of templates, ``#tag`` calls or parser-function branches.
This module runs the content through a real expansion engine with two kinds
of override hooks installed:

* the restricted tag handler, which raises a flag when the tag is reached on
  the page being edited and ignores it when it comes from an included page;
* the conditional parser functions (``#if``, ``#ifeq``, ``#iferror``,
  ``#ifexpr``, ``#ifexist``, ``#switch``), which expand *every* argument
  instead of picking a branch, so a tag parked in a branch that is false at
  save time (but true later) is still reached;
* ``#tag``, whose name argument may itself come out of a conditional and so
  hold every branch at once; any branch naming the restricted tag counts.

The content is expanded twice: once as the page reads when viewed, and once
as it reads when transcluded elsewhere (``<includeonly>`` kept,
``<noinclude>`` dropped). Hooks are handed to the engine factory as data
(name → handler mappings), and every pass gets its own engine instance.

Composition::

    content -> EngineFactory(hooks) -> engine.expand(content, title) -> flag
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Mapping, Protocol

from .detection import RESTRICTED_TAG
from .models import Confidence, ContentModel, DetectionVerdict, PageTitle
from .settings import RuntimeSettings

logger = logging.getLogger(__name__)

CONDITIONAL_FUNCTIONS = ("ifeq", "iferror", "ifexpr", "switch", "ifexist", "if")
BRANCH_SEPARATOR = "\n"


class ExpansionBudgetExceeded(RuntimeError):
    """Raised by an engine when an expansion exceeds its depth or node budget."""


@dataclass(frozen=True)
class ExpansionOptions:
    """Resource bounds for one expansion pass.

    ``max_depth`` bounds template transclusion depth, ``max_nodes`` the total
    number of constructs expanded, and ``max_nesting`` the nesting of
    constructs inside one another. ``inclusion`` asks the engine to prepare
    the top-level content as a transcluded page instead of a viewed one.
    """

    max_depth: int = 40
    max_nodes: int = 1_000_000
    max_nesting: int = 100
    inclusion: bool = False


class ExpansionFrame(Protocol):
    """One expansion context: the page whose text is being expanded."""

    title: PageTitle

    def expand(self, text: str) -> str: ...


class ExpansionEngine(Protocol):
    """Host template/markup expansion engine, consumed at its interface only."""

    def expand(self, content: str, title: PageTitle, options: ExpansionOptions | None = None) -> str: ...

    def current_frame_title(self) -> PageTitle | None: ...

    def top_level_title(self) -> PageTitle | None: ...


TagHandler = Callable[[ExpansionEngine, ExpansionFrame, str | None, dict[str, str]], str]
FunctionHandler = Callable[[ExpansionEngine, ExpansionFrame, list[str]], str]


@dataclass(frozen=True)
class ExpansionHooks:
    """Override handlers keyed by tag name and by parser-function name (no ``#``)."""

    tags: Mapping[str, TagHandler] = field(default_factory=dict)
    functions: Mapping[str, FunctionHandler] = field(default_factory=dict)


class EngineFactory(Protocol):
    def __call__(self, hooks: ExpansionHooks) -> ExpansionEngine: ...


class _ReachabilityFlag:
    """Set when the restricted tag is reached on the page being expanded."""

    __slots__ = ("reached",)

    def __init__(self) -> None:
        self.reached = False

    def reset(self) -> None:
        self.reached = False


class ExpansionHookDetector:
    """Runs one hooked expansion per call and reports whether the tag was reached."""

    def __init__(
        self,
        engine_factory: EngineFactory,
        *,
        options: ExpansionOptions | None = None,
        fail_closed_on_budget: bool = True,
        restricted_tag: str = RESTRICTED_TAG,
        separator: str = BRANCH_SEPARATOR,
    ) -> None:
        self._engine_factory = engine_factory
        self._options = options or ExpansionOptions()
        self._fail_closed_on_budget = fail_closed_on_budget
        self._restricted_tag = restricted_tag
        self._separator = separator

    @classmethod
    def from_settings(cls, engine_factory: EngineFactory, settings: RuntimeSettings) -> "ExpansionHookDetector":
        return cls(
            engine_factory,
            options=ExpansionOptions(
                max_depth=settings.max_expansion_depth,
                max_nodes=settings.max_expansion_nodes,
            ),
            fail_closed_on_budget=settings.fail_closed_on_budget,
        )

    def build_hooks(self, flag: _ReachabilityFlag) -> ExpansionHooks:
        tag = self._restricted_tag
        separator = self._separator

        def restricted_tag_handler(
            engine: ExpansionEngine,
            frame: ExpansionFrame,
            inner: str | None,
            attributes: dict[str, str],
        ) -> str:
            top_title = engine.top_level_title()
            current_title = engine.current_frame_title() or frame.title
            if top_title != current_title:
                # Included from another page: that page's own edits were gated.
                logger.debug("Ignoring <%s> reached via %s while expanding %s", tag, current_title, top_title)
                return ""
            flag.reached = True
            return ""

        def expand_all_branches(engine: ExpansionEngine, frame: ExpansionFrame, args: list[str]) -> str:
            return separator.join(frame.expand(arg) for arg in args)

        def tag_function(engine: ExpansionEngine, frame: ExpansionFrame, args: list[str]) -> str:
            name = frame.expand(args[0]).strip()
            inner = frame.expand(args[1]) if len(args) > 1 else None
            rest = [frame.expand(arg) for arg in args[2:]]
            # A name still holding joined branches is decided at render time.
            if (separator and separator in name) or name.lower() == tag:
                restricted_tag_handler(engine, frame, inner, {})
            return separator.join([inner or "", *rest])

        functions: dict[str, FunctionHandler] = {name: expand_all_branches for name in CONDITIONAL_FUNCTIONS}
        functions["tag"] = tag_function
        return ExpansionHooks(tags={tag: restricted_tag_handler}, functions=functions)

    def expand_and_detect(
        self,
        content: str,
        title: PageTitle,
        *,
        content_model: ContentModel = ContentModel.WIKITEXT,
    ) -> bool:
        """Expand ``content`` as if saved at ``title``; True when the tag is reached.

        The page is checked as viewed and, failing that, as transcluded.
        Non-wikitext content is not expanded and reports False. A pass that
        runs out of budget reports True when ``fail_closed_on_budget`` is set.
        Any other engine failure propagates.
        """
        if content_model != ContentModel.WIKITEXT:
            logger.debug("Skipping expansion check for %s content on %s", content_model.value, title)
            return False

        if self._run_pass(content, title, self._options):
            return True
        return self._run_pass(content, title, replace(self._options, inclusion=True))

    def _run_pass(self, content: str, title: PageTitle, options: ExpansionOptions) -> bool:
        flag = _ReachabilityFlag()
        engine = self._engine_factory(self.build_hooks(flag))
        flag.reset()
        try:
            engine.expand(content, title, options)
        except ExpansionBudgetExceeded as exc:
            reached = flag.reached or self._fail_closed_on_budget
            logger.warning(
                "Expansion budget exhausted while checking %s%s (%s); treating as %s",
                title,
                " as transcluded" if options.inclusion else "",
                exc,
                "reachable" if reached else "not reachable",
            )
            flag.reset()
            return reached
        reached = flag.reached
        flag.reset()
        return reached

    def detect(
        self,
        content: str,
        title: PageTitle,
        *,
        content_model: ContentModel = ContentModel.WIKITEXT,
    ) -> DetectionVerdict:
        return DetectionVerdict(
            has_restricted_tag=self.expand_and_detect(content, title, content_model=content_model),
            confidence=Confidence.SEMANTIC,
        )
