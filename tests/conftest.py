from __future__ import annotations

import pytest

from safer_html_tag.context import RequestContext
from safer_html_tag.coordinator import SaferHtmlTag
from safer_html_tag.messages import CollectingMessageSink
from safer_html_tag.models import ContentModel, Principal
from safer_html_tag.permissions import InMemoryPermissionStore
from safer_html_tag.settings import RuntimeSettings
from safer_html_tag.wikitext import InMemoryPageStore, ReferenceExpansionEngine, StoredPage

ALICE = Principal(name="Alice")
ADMIN = Principal(name="Root", groups=frozenset({"sysop"}))


@pytest.fixture(autouse=True)
def _clear_saferhtml_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep tests independent of the developer's SAFERHTML_* environment."""
    for name in (
        "SAFERHTML_RAW_HTML",
        "SAFERHTML_PERMISSION",
        "SAFERHTML_EDITOR_GROUP",
        "SAFERHTML_MAX_EXPANSION_DEPTH",
        "SAFERHTML_MAX_EXPANSION_NODES",
        "SAFERHTML_FAIL_CLOSED_ON_BUDGET",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def pages() -> InMemoryPageStore:
    return InMemoryPageStore(
        {
            "Main Page": "Welcome to the wiki.",
            "Raw Page": "Intro <html><b>bold</b></html> outro",
            "Template:Evil": "{{#tag:html|<script>alert(1)</script>}}",
            "Template:Banner": "<html><div class=\"banner\">hi</div></html>",
            "Template:Echo": "{{{1}}}",
            "Template:Greet": "Hello {{{1}}} and {{{name|nobody}}}",
            "Site.css": StoredPage(content="/* <html> */ body { color: red }", content_model=ContentModel.CSS),
        }
    )


@pytest.fixture
def permissions() -> InMemoryPermissionStore:
    return InMemoryPermissionStore({"interface-admin": {"edithtml", "editinterface"}, "user": {"edit"}})


@pytest.fixture
def sink() -> CollectingMessageSink:
    return CollectingMessageSink()


@pytest.fixture
def settings() -> RuntimeSettings:
    return RuntimeSettings()


@pytest.fixture
def coordinator(
    settings: RuntimeSettings,
    pages: InMemoryPageStore,
    permissions: InMemoryPermissionStore,
    sink: CollectingMessageSink,
) -> SaferHtmlTag:
    return SaferHtmlTag.from_settings(
        settings,
        pages=pages,
        permissions=permissions,
        engine_factory=ReferenceExpansionEngine.factory(pages, raw_html=True),
        messages=sink,
    )


@pytest.fixture
def alice() -> RequestContext:
    return RequestContext(principal=ALICE)


@pytest.fixture
def admin() -> RequestContext:
    return RequestContext(principal=ADMIN)
