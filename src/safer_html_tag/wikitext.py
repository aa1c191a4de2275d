"""In-process wikitext expansion engine and page store.

Hosts normally plug their own engine in through :class:`EngineFactory`; this
one implements the same interface for the command line and the test-suite.
It covers what matters for the restricted-tag check:

* template transclusion (``{{Name|a|k=v}}``, ``{{:Page}}``) with lazily
  expanded parameters (``{{{1}}}``, ``{{{name|default}}}``);
* the conditional parser functions and ``#tag``;
* extension tags (``<name>…</name>``, ``<name/>``) for registered names;
* ``<noinclude>`` / ``<includeonly>`` / ``<onlyinclude>`` sections.

Hook overrides passed in :class:`ExpansionHooks` replace built-in handlers
of the same name.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Mapping

from pydantic import BaseModel, Field

from .expansion import (
    EngineFactory,
    ExpansionBudgetExceeded,
    ExpansionHooks,
    ExpansionOptions,
    FunctionHandler,
    TagHandler,
)
from .models import ContentModel, PageTitle

logger = logging.getLogger(__name__)

KNOWN_NAMESPACES = ("Template", "User", "Help", "Project", "MediaWiki", "Category", "Module", "File")
_NAMESPACE_LOOKUP = {name.lower(): name for name in KNOWN_NAMESPACES}
_ERROR_RE = re.compile(r"""class\s*=\s*["'][^"']*\berror\b""")
_NOINCLUDE_RE = re.compile(r"<noinclude>.*?(?:</noinclude>|$)", re.S | re.I)
_INCLUDEONLY_RE = re.compile(r"<includeonly>.*?(?:</includeonly>|$)", re.S | re.I)
_ONLYINCLUDE_RE = re.compile(r"<onlyinclude>(.*?)</onlyinclude>", re.S | re.I)
_INCLUSION_TAG_RE = re.compile(r"</?(?:noinclude|includeonly|onlyinclude)\s*>", re.I)
_ATTRIBUTE_RE = re.compile(r"""([A-Za-z_:][-A-Za-z0-9_:.]*)\s*(?:=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+)))?""")
_NUMBER_RE = re.compile(r"^[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?$")


def normalize_title(text: str) -> PageTitle:
    """Normalize a page name: underscores to spaces, known namespace prefix, first letter upper."""
    title = " ".join(text.replace("_", " ").split())
    prefix, sep, rest = title.partition(":")
    if sep and prefix.strip().lower() in _NAMESPACE_LOOKUP:
        return f"{_NAMESPACE_LOOKUP[prefix.strip().lower()]}:{_ucfirst(rest.strip())}"
    return _ucfirst(title)


def _ucfirst(text: str) -> str:
    return text[:1].upper() + text[1:]


def _guess_content_model(title: PageTitle) -> ContentModel:
    lowered = title.lower()
    if lowered.endswith(".css"):
        return ContentModel.CSS
    if lowered.endswith(".js"):
        return ContentModel.JAVASCRIPT
    if lowered.endswith(".json"):
        return ContentModel.JSON
    return ContentModel.WIKITEXT


# ---------------------------------------------------------------------------
# Page store
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StoredPage:
    content: str
    content_model: ContentModel = ContentModel.WIKITEXT


class PageFixture(BaseModel):
    content: str
    content_model: ContentModel = ContentModel.WIKITEXT


class PageFixtureFile(BaseModel):
    """JSON page fixtures: ``{"pages": {"Title": "text" | {"content": ..., "content_model": ...}}}``."""

    pages: dict[str, str | PageFixture] = Field(default_factory=dict)


class InMemoryPageStore:
    """Latest revision of each page, keyed by normalized title."""

    def __init__(self, pages: Mapping[str, str | StoredPage] | None = None) -> None:
        self._pages: dict[PageTitle, StoredPage] = {}
        for title, page in (pages or {}).items():
            if isinstance(page, StoredPage):
                self._pages[normalize_title(title)] = page
            else:
                self.save(title, page)

    @classmethod
    def from_json_file(cls, path: Path) -> "InMemoryPageStore":
        if not path.is_file():
            raise FileNotFoundError(f"Page fixture file not found: {path}")
        fixtures = PageFixtureFile.model_validate_json(path.read_text(encoding="utf-8"))
        pages: dict[str, StoredPage] = {}
        for title, entry in fixtures.pages.items():
            if isinstance(entry, str):
                pages[title] = StoredPage(content=entry, content_model=_guess_content_model(normalize_title(title)))
            else:
                pages[title] = StoredPage(content=entry.content, content_model=entry.content_model)
        return cls(pages)

    def read_stored_content(self, title: PageTitle) -> str | None:
        page = self._pages.get(normalize_title(title))
        return page.content if page is not None else None

    def page_exists(self, title: PageTitle) -> bool:
        return normalize_title(title) in self._pages

    def content_model(self, title: PageTitle) -> ContentModel:
        page = self._pages.get(normalize_title(title))
        if page is not None:
            return page.content_model
        return _guess_content_model(normalize_title(title))

    def is_plain_text_markup_page(self, title: PageTitle) -> bool:
        return self.content_model(title) == ContentModel.WIKITEXT

    def save(self, title: PageTitle, content: str, content_model: ContentModel | None = None) -> None:
        normalized = normalize_title(title)
        model = content_model if content_model is not None else self.content_model(normalized)
        self._pages[normalized] = StoredPage(content=content, content_model=model)
        logger.debug("Saved %s (%d chars, %s)", normalized, len(content), model.value)

    def titles(self) -> list[PageTitle]:
        return sorted(self._pages)

    def to_json(self) -> str:
        payload = {
            "pages": {
                title: {"content": page.content, "content_model": page.content_model.value}
                for title, page in sorted(self._pages.items())
            }
        }
        return json.dumps(payload, indent=2, ensure_ascii=False)


# ---------------------------------------------------------------------------
# #ifexpr expression evaluation
# ---------------------------------------------------------------------------


class ExpressionError(ValueError):
    """Raised for malformed ``#ifexpr`` expressions."""


_EXPR_TOKEN_RE = re.compile(r"\s*(?:(\d+(?:\.\d*)?|\.\d+)|(<=|>=|<>|!=|[-+*/()=<>])|([A-Za-z]+))")
_EXPR_WORDS = frozenset({"and", "or", "not", "mod", "div"})
_COMPARISONS = {
    "=": lambda a, b: a == b,
    "<>": lambda a, b: a != b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a < b,
    ">": lambda a, b: a > b,
    "<=": lambda a, b: a <= b,
    ">=": lambda a, b: a >= b,
}


def _tokenize_expression(text: str) -> list[str | float]:
    tokens: list[str | float] = []
    pos = 0
    stripped = text.rstrip()
    while pos < len(stripped):
        match = _EXPR_TOKEN_RE.match(stripped, pos)
        if match is None:
            raise ExpressionError(f'Unrecognized punctuation character "{stripped[pos:].strip()[:1]}".')
        number, operator, word = match.groups()
        if number is not None:
            tokens.append(float(number))
        elif operator is not None:
            tokens.append(operator)
        else:
            lowered = word.lower()
            if lowered not in _EXPR_WORDS:
                raise ExpressionError(f'Unrecognized word "{word}".')
            tokens.append(lowered)
        pos = match.end()
    return tokens


class _ExpressionParser:
    """Recursive-descent evaluator: or < and < comparison < +,- < *,/,div,mod < unary."""

    def __init__(self, tokens: list[str | float]) -> None:
        self._tokens = tokens
        self._pos = 0

    def _peek(self) -> str | float | None:
        return self._tokens[self._pos] if self._pos < len(self._tokens) else None

    def _next(self) -> str | float | None:
        token = self._peek()
        self._pos += 1
        return token

    def parse(self) -> float:
        value = self._or()
        if self._peek() is not None:
            raise ExpressionError(f'Unexpected operator "{self._peek()}".')
        return value

    def _or(self) -> float:
        value = self._and()
        while self._peek() == "or":
            self._next()
            right = self._and()
            value = 1.0 if (value or right) else 0.0
        return value

    def _and(self) -> float:
        value = self._comparison()
        while self._peek() == "and":
            self._next()
            right = self._comparison()
            value = 1.0 if (value and right) else 0.0
        return value

    def _comparison(self) -> float:
        value = self._additive()
        while isinstance(self._peek(), str) and self._peek() in _COMPARISONS:
            operator = self._next()
            right = self._additive()
            value = 1.0 if _COMPARISONS[operator](value, right) else 0.0
        return value

    def _additive(self) -> float:
        value = self._multiplicative()
        while self._peek() in ("+", "-"):
            operator = self._next()
            right = self._multiplicative()
            value = value + right if operator == "+" else value - right
        return value

    def _multiplicative(self) -> float:
        value = self._unary()
        while self._peek() in ("*", "/", "div", "mod"):
            operator = self._next()
            right = self._unary()
            if operator == "*":
                value = value * right
                continue
            if operator == "mod":
                if not (math.isfinite(value) and math.isfinite(right)):
                    raise ExpressionError("Number out of range.")
                if int(right) == 0:
                    raise ExpressionError("Division by zero.")
                value = float(int(value) % int(right))
            elif right == 0:
                raise ExpressionError("Division by zero.")
            else:
                value = value / right
        return value

    def _unary(self) -> float:
        token = self._peek()
        if token == "-":
            self._next()
            return -self._unary()
        if token == "+":
            self._next()
            return self._unary()
        if token == "not":
            self._next()
            return 0.0 if self._unary() else 1.0
        return self._primary()

    def _primary(self) -> float:
        token = self._next()
        if isinstance(token, float):
            return token
        if token == "(":
            value = self._or()
            if self._next() != ")":
                raise ExpressionError("Unexpected end of expression: missing closing bracket.")
            return value
        if token is None:
            raise ExpressionError("Unexpected end of expression.")
        raise ExpressionError(f'Unexpected operator "{token}".')


def evaluate_expression(text: str) -> float:
    """Evaluate an ``#ifexpr`` expression. Raises ExpressionError when malformed."""
    return _ExpressionParser(_tokenize_expression(text)).parse()


def _error_span(message: str) -> str:
    return f'<strong class="error">{message}</strong>'


def _as_number(value: str) -> float | None:
    if not _NUMBER_RE.match(value):
        return None
    return float(value)


def _values_equal(left: str, right: str) -> bool:
    left_number, right_number = _as_number(left), _as_number(right)
    if left_number is not None and right_number is not None:
        return left_number == right_number
    return left == right


def _branch(frame: "Frame", args: list[str], index: int) -> str:
    return frame.expand(args[index]).strip() if index < len(args) else ""


# ---------------------------------------------------------------------------
# Built-in parser functions and tags
# ---------------------------------------------------------------------------


def _fn_if(engine: "ReferenceExpansionEngine", frame: "Frame", args: list[str]) -> str:
    test = frame.expand(args[0]).strip()
    return _branch(frame, args, 1 if test else 2)


def _fn_ifeq(engine: "ReferenceExpansionEngine", frame: "Frame", args: list[str]) -> str:
    left = frame.expand(args[0]).strip()
    right = frame.expand(args[1]).strip() if len(args) > 1 else ""
    return _branch(frame, args, 2 if _values_equal(left, right) else 3)


def _fn_iferror(engine: "ReferenceExpansionEngine", frame: "Frame", args: list[str]) -> str:
    test = frame.expand(args[0])
    if _ERROR_RE.search(test):
        return _branch(frame, args, 1)
    if len(args) > 2:
        return _branch(frame, args, 2)
    return test.strip()


def _fn_ifexpr(engine: "ReferenceExpansionEngine", frame: "Frame", args: list[str]) -> str:
    expression = frame.expand(args[0]).strip()
    if not expression:
        return _branch(frame, args, 2)
    try:
        value = evaluate_expression(expression)
    except ExpressionError as exc:
        return _error_span(f"Expression error: {exc}")
    return _branch(frame, args, 1 if value else 2)


def _fn_ifexist(engine: "ReferenceExpansionEngine", frame: "Frame", args: list[str]) -> str:
    target = frame.expand(args[0]).strip()
    exists = bool(target) and engine.page_exists(normalize_title(target))
    return _branch(frame, args, 1 if exists else 2)


def _fn_switch(engine: "ReferenceExpansionEngine", frame: "Frame", args: list[str]) -> str:
    value = frame.expand(args[0]).strip()
    cases = args[1:]
    default: str | None = None
    matched = False
    for index, raw_case in enumerate(cases):
        key, is_named, result = engine.split_named(raw_case)
        if is_named:
            case_key = frame.expand(key).strip()
            if matched or _values_equal(case_key, value):
                return frame.expand(result).strip()
            if case_key == "#default":
                default = result
            continue
        case_key = frame.expand(raw_case).strip()
        if index == len(cases) - 1:
            # A trailing bare value doubles as the default.
            return case_key
        if _values_equal(case_key, value):
            matched = True
    return frame.expand(default).strip() if default is not None else ""


def _fn_tag(engine: "ReferenceExpansionEngine", frame: "Frame", args: list[str]) -> str:
    name = frame.expand(args[0]).strip().lower()
    inner = frame.expand(args[1]) if len(args) > 1 else None
    attributes: dict[str, str] = {}
    for raw_attribute in args[2:]:
        key, is_named, value = engine.split_named(raw_attribute)
        if is_named:
            attributes[frame.expand(key).strip()] = frame.expand(value).strip().strip("\"'")
    handler = engine.tag_handler(name)
    if handler is None:
        return _error_span(f'Unknown extension tag "{name}"')
    engine.tick()
    return handler(engine, frame, inner, attributes)


def _tag_nowiki(engine: "ReferenceExpansionEngine", frame: "Frame", inner: str | None, attributes: dict[str, str]) -> str:
    return inner or ""


def _tag_raw_html(engine: "ReferenceExpansionEngine", frame: "Frame", inner: str | None, attributes: dict[str, str]) -> str:
    return inner or ""


BUILTIN_FUNCTIONS: dict[str, FunctionHandler] = {
    "if": _fn_if,
    "ifeq": _fn_ifeq,
    "iferror": _fn_iferror,
    "ifexpr": _fn_ifexpr,
    "ifexist": _fn_ifexist,
    "switch": _fn_switch,
    "tag": _fn_tag,
}

_MAGIC_WORDS = {
    "PAGENAME": lambda engine, frame: _page_name(engine.top_level_title() or ""),
    "FULLPAGENAME": lambda engine, frame: engine.top_level_title() or "",
}


def _page_name(title: PageTitle) -> str:
    prefix, sep, rest = title.partition(":")
    if sep and prefix in KNOWN_NAMESPACES:
        return rest
    return title


# ---------------------------------------------------------------------------
# Frames and engine
# ---------------------------------------------------------------------------


class Frame:
    """Expansion context for one page: top-level page or a transcluded template.

    Template arguments are stored raw and expanded in the calling frame on
    first use.
    """

    def __init__(
        self,
        engine: "ReferenceExpansionEngine",
        title: PageTitle,
        *,
        parent: "Frame | None" = None,
        args: dict[str, str] | None = None,
        named: frozenset[str] = frozenset(),
    ) -> None:
        self.engine = engine
        self.title = title
        self.parent = parent
        self.depth = 0 if parent is None else parent.depth + 1
        self._args = args or {}
        self._named = named
        self._expanded: dict[str, str] = {}

    def expand(self, text: str) -> str:
        return self.engine.expand_in_frame(text, self)

    def get_argument(self, name: str) -> str | None:
        if name not in self._args or self.parent is None:
            return None
        if name not in self._expanded:
            value = self.parent.expand(self._args[name])
            self._expanded[name] = value.strip() if name in self._named else value
        return self._expanded[name]

    def ancestry(self) -> Iterator[PageTitle]:
        frame: Frame | None = self
        while frame is not None:
            yield frame.title
            frame = frame.parent


class ReferenceExpansionEngine:
    """Recursive wikitext expander implementing the ``ExpansionEngine`` protocol.

    One instance is meant for one expansion pass; the hooked detector asks the
    factory for a new instance on every check.
    """

    def __init__(
        self,
        pages: InMemoryPageStore | None = None,
        hooks: ExpansionHooks | None = None,
        *,
        raw_html: bool = False,
        options: ExpansionOptions | None = None,
    ) -> None:
        self._pages = pages
        self._options = options or ExpansionOptions()
        self._tags: dict[str, TagHandler] = {"nowiki": _tag_nowiki}
        if raw_html:
            self._tags["html"] = _tag_raw_html
        self._functions: dict[str, FunctionHandler] = dict(BUILTIN_FUNCTIONS)
        if hooks is not None:
            self._tags.update({name.lower(): handler for name, handler in hooks.tags.items()})
            self._functions.update({name.lower().lstrip("#"): handler for name, handler in hooks.functions.items()})
        tag_names = "|".join(re.escape(name) for name in sorted(self._tags, key=len, reverse=True))
        tag_pattern = rf"<(?P<tag>{tag_names})(?P<attrs>\s[^>]*?)?\s*(?P<selfclose>/)?>"
        self._tag_open_re = re.compile(tag_pattern, re.I)
        self._construct_re = re.compile(rf"(?P<brace>\{{\{{)|{tag_pattern}", re.I)
        self._top_title: PageTitle | None = None
        self._frames: list[Frame] = []
        self._active_options = self._options
        self._nodes = 0

    @classmethod
    def factory(
        cls,
        pages: InMemoryPageStore | None = None,
        *,
        raw_html: bool = False,
        options: ExpansionOptions | None = None,
    ) -> EngineFactory:
        """Return an ``EngineFactory`` building a fresh engine over ``pages`` per call."""

        def build(hooks: ExpansionHooks) -> ReferenceExpansionEngine:
            return cls(pages, hooks, raw_html=raw_html, options=options)

        return build

    # -- ExpansionEngine protocol ------------------------------------------

    def expand(self, content: str, title: PageTitle, options: ExpansionOptions | None = None) -> str:
        self._active_options = options or self._options
        self._nodes = 0
        self._top_title = normalize_title(title)
        self._frames = []
        root = Frame(self, self._top_title)
        prepare = _prepare_for_inclusion if self._active_options.inclusion else _prepare_for_view
        return root.expand(prepare(content))

    def current_frame_title(self) -> PageTitle | None:
        if self._frames:
            return self._frames[-1].title
        return self._top_title

    def top_level_title(self) -> PageTitle | None:
        return self._top_title

    # -- helpers used by built-in handlers ---------------------------------

    def page_exists(self, title: PageTitle) -> bool:
        return self._pages is not None and self._pages.page_exists(title)

    def tag_handler(self, name: str) -> TagHandler | None:
        return self._tags.get(name.lower())

    def tick(self) -> None:
        self._nodes += 1
        if self._nodes > self._active_options.max_nodes:
            raise ExpansionBudgetExceeded(f"node count exceeded {self._active_options.max_nodes}")

    def split_named(self, raw: str) -> tuple[str, bool, str]:
        """Split ``key=value`` at the first top-level ``=``; ``(raw, False, "")`` otherwise."""
        positions = self._top_level_positions(raw, "=", first_only=True)
        if not positions:
            return raw, False, ""
        index = positions[0]
        return raw[:index], True, raw[index + 1 :]

    # -- expansion ---------------------------------------------------------

    def expand_in_frame(self, text: str, frame: Frame) -> str:
        if frame.depth > self._active_options.max_depth:
            raise ExpansionBudgetExceeded(f"template depth exceeded {self._active_options.max_depth}")
        if len(self._frames) >= self._active_options.max_nesting:
            raise ExpansionBudgetExceeded(f"nesting exceeded {self._active_options.max_nesting}")
        self._frames.append(frame)
        try:
            return self._expand_text(text, frame)
        finally:
            self._frames.pop()

    def _expand_text(self, text: str, frame: Frame) -> str:
        out: list[str] = []
        pos = 0
        while True:
            match = self._construct_re.search(text, pos)
            if match is None:
                out.append(text[pos:])
                break
            out.append(text[pos : match.start()])
            if match.group("brace"):
                end = _find_brace_close(text, match.start())
                if end < 0:
                    out.append("{{")
                    pos = match.start() + 2
                    continue
                out.append(self._expand_braces(text[match.start() : end], frame))
                pos = end
                continue
            name = match.group("tag").lower()
            if match.group("selfclose"):
                inner: str | None = None
                end = match.end()
            else:
                close = re.compile(rf"</{re.escape(name)}\s*>", re.I).search(text, match.end())
                if close is None:
                    out.append(match.group(0))
                    pos = match.end()
                    continue
                inner = text[match.end() : close.start()]
                end = close.end()
            self.tick()
            out.append(self._tags[name](self, frame, inner, _parse_attributes(match.group("attrs") or "")))
            pos = end
        return "".join(out)

    def _expand_braces(self, raw: str, frame: Frame) -> str:
        self.tick()
        if raw.startswith("{{{") and raw.endswith("}}}") and len(raw) >= 6:
            return self._expand_parameter(raw, frame)
        return self._expand_template(raw, frame)

    def _expand_parameter(self, raw: str, frame: Frame) -> str:
        parts = self._split_parts(raw[3:-3])
        name = frame.expand(parts[0]).strip()
        value = frame.get_argument(name)
        if value is not None:
            return value
        if len(parts) > 1:
            return frame.expand(parts[1])
        return raw

    def _expand_template(self, raw: str, frame: Frame) -> str:
        parts = self._split_parts(raw[2:-2])
        head = parts[0].lstrip()
        if head.startswith("#"):
            function_name, has_colon, first_arg = head[1:].partition(":")
            handler = self._functions.get(function_name.strip().lower())
            if handler is None or not has_colon:
                return raw
            return handler(self, frame, [first_arg, *parts[1:]])

        name = frame.expand(parts[0]).strip()
        if not name:
            return raw
        magic = _MAGIC_WORDS.get(name)
        if magic is not None and len(parts) == 1:
            return magic(self, frame)
        if name.startswith(":"):
            title = normalize_title(name[1:])
        elif ":" in name and name.partition(":")[0].strip().lower() in _NAMESPACE_LOOKUP:
            title = normalize_title(name)
        else:
            title = normalize_title(f"Template:{name}")
        return self._transclude(title, parts[1:], frame)

    def _transclude(self, title: PageTitle, raw_args: list[str], frame: Frame) -> str:
        if title in frame.ancestry():
            logger.debug("Template loop on %s", title)
            return f'<span class="error">Template loop detected: [[{title}]]</span>'
        content = self._pages.read_stored_content(title) if self._pages is not None else None
        if content is None:
            return f"[[{title}]]"
        args: dict[str, str] = {}
        named: set[str] = set()
        position = 1
        for raw_arg in raw_args:
            key, is_named, value = self.split_named(raw_arg)
            if is_named:
                arg_name = frame.expand(key).strip()
                args[arg_name] = value
                named.add(arg_name)
            else:
                args[str(position)] = raw_arg
                position += 1
        child = Frame(self, title, parent=frame, args=args, named=frozenset(named))
        return child.expand(_prepare_for_inclusion(content))

    def _split_parts(self, body: str) -> list[str]:
        positions = self._top_level_positions(body, "|")
        parts: list[str] = []
        start = 0
        for index in positions:
            parts.append(body[start:index])
            start = index + 1
        parts.append(body[start:])
        return parts

    def _top_level_positions(self, text: str, target: str, *, first_only: bool = False) -> list[int]:
        """Indexes of ``target`` outside nested braces, links and registered tags."""
        positions: list[int] = []
        braces = 0
        links = 0
        index = 0
        length = len(text)
        while index < length:
            char = text[index]
            if char == "<":
                tag = self._tag_open_re.match(text, index)
                if tag is not None:
                    if tag.group("selfclose"):
                        index = tag.end()
                        continue
                    close = re.compile(rf"</{re.escape(tag.group('tag'))}\s*>", re.I).search(text, tag.end())
                    if close is not None:
                        index = close.end()
                        continue
            if char == "{":
                braces += 1
            elif char == "}":
                braces = max(0, braces - 1)
            elif text.startswith("[[", index):
                links += 1
                index += 2
                continue
            elif text.startswith("]]", index) and links:
                links -= 1
                index += 2
                continue
            elif char == target and braces == 0 and links == 0:
                positions.append(index)
                if first_only:
                    break
            index += 1
        return positions


def _find_brace_close(text: str, start: int) -> int:
    """Index just past the brace that balances the run opening at ``start``; -1 if unbalanced."""
    depth = 0
    for index in range(start, len(text)):
        char = text[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index + 1
    return -1


def _parse_attributes(text: str) -> dict[str, str]:
    attributes: dict[str, str] = {}
    for match in _ATTRIBUTE_RE.finditer(text):
        name = match.group(1).lower()
        value = next((group for group in match.groups()[1:] if group is not None), "")
        attributes[name] = value
    return attributes


def _prepare_for_view(content: str) -> str:
    without_includeonly = _INCLUDEONLY_RE.sub("", content)
    return _INCLUSION_TAG_RE.sub("", without_includeonly)


def _prepare_for_inclusion(content: str) -> str:
    only = _ONLYINCLUDE_RE.findall(content)
    if only:
        return "".join(only)
    without_noinclude = _NOINCLUDE_RE.sub("", content)
    return _INCLUSION_TAG_RE.sub("", without_noinclude)
