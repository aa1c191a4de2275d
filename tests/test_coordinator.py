from __future__ import annotations

import json
import logging

import pytest

from safer_html_tag.context import RequestContext
from safer_html_tag.coordinator import SaferHtmlTag
from safer_html_tag.expansion import ExpansionHookDetector, ExpansionHooks
from safer_html_tag.messages import DENIED_EDIT, DENIED_SAVE, NOTICE_HTML_DETECTED, CollectingMessageSink
from safer_html_tag.models import Confidence, ContentModel, EditStatus, PolicyDecision, Principal
from safer_html_tag.permissions import InMemoryPermissionStore, PermissionOracle
from safer_html_tag.settings import RuntimeSettings
from safer_html_tag.wikitext import InMemoryPageStore, ReferenceExpansionEngine


class _CountingPages(InMemoryPageStore):
    def __init__(self, *args: object, **kwargs: object) -> None:
        super().__init__(*args, **kwargs)
        self.reads = 0

    def read_stored_content(self, title: str) -> str | None:
        self.reads += 1
        return super().read_stored_content(title)


def _no_engine(hooks: ExpansionHooks) -> ReferenceExpansionEngine:
    raise AssertionError("expansion must not run for this edit")


# -- notices ---------------------------------------------------------------


def test_notice_for_stored_page_with_restricted_markup(
    coordinator: SaferHtmlTag, alice: RequestContext, sink: CollectingMessageSink
) -> None:
    assert coordinator.on_edit_notices_collected(alice, "Raw Page") == NOTICE_HTML_DETECTED
    assert len(sink.warnings) == 1
    assert "<html>" in sink.warnings[0]


def test_no_notice_for_authorized_principal(coordinator: SaferHtmlTag, admin: RequestContext, sink) -> None:
    assert coordinator.on_edit_notices_collected(admin, "Raw Page") is None
    assert sink.warnings == []


def test_no_notice_for_missing_page_without_draft(coordinator: SaferHtmlTag, alice: RequestContext) -> None:
    assert coordinator.on_edit_notices_collected(alice, "Brand New") is None


def test_draft_takes_precedence_and_is_consumed(coordinator: SaferHtmlTag, alice: RequestContext) -> None:
    coordinator.on_form_render_begin(alice, "cleaned up, no markup")

    assert coordinator.on_edit_notices_collected(alice, "Raw Page") is None
    assert len(coordinator.drafts) == 0
    assert coordinator.on_edit_notices_collected(alice, "Raw Page") == NOTICE_HTML_DETECTED


def test_draft_with_markup_on_new_page_gets_notice(coordinator: SaferHtmlTag, alice: RequestContext) -> None:
    coordinator.on_form_render_begin(alice, "{{#tag:html|<b>x</b>}}")
    assert coordinator.on_edit_notices_collected(alice, "Brand New") == NOTICE_HTML_DETECTED


def test_drafts_are_isolated_per_session(coordinator: SaferHtmlTag, alice: RequestContext) -> None:
    other_tab = RequestContext(principal=alice.principal)
    coordinator.on_form_render_begin(alice, "<html>x</html>")

    assert coordinator.on_edit_notices_collected(other_tab, "Brand New") is None
    assert coordinator.drafts.peek(alice) == "<html>x</html>"


def test_later_render_overwrites_draft(coordinator: SaferHtmlTag, alice: RequestContext) -> None:
    coordinator.on_form_render_begin(alice, "<html>x</html>")
    coordinator.on_form_render_begin(alice, "plain")

    assert coordinator.on_edit_notices_collected(alice, "Brand New") is None


# -- fast filter -----------------------------------------------------------


def test_fast_filter_rejects_visible_markup(coordinator: SaferHtmlTag, alice: RequestContext) -> None:
    status = EditStatus()

    decision = coordinator.on_content_merged_filter(alice, "Main Page", "hi <html>x</html>", status)

    assert decision == PolicyDecision.REJECT
    assert status.ok is False
    assert status.fatal is False
    assert status.message_keys == [DENIED_EDIT]
    record = coordinator.decisions[-1]
    assert (record.hook, record.decision, record.confidence) == (
        "onContentMergedFilter",
        PolicyDecision.REJECT,
        Confidence.SYNTACTIC,
    )


def test_fast_filter_allows_authorized_and_plain_edits(coordinator: SaferHtmlTag, alice, admin) -> None:
    status = EditStatus()

    assert coordinator.on_content_merged_filter(admin, "Main Page", "<html>x</html>", status) == PolicyDecision.ALLOW
    assert coordinator.on_content_merged_filter(alice, "Main Page", "plain", status) == PolicyDecision.ALLOW
    ida = RequestContext(principal=Principal(name="Ida", groups=frozenset({"interface-admin"})))
    assert coordinator.on_content_merged_filter(ida, "Main Page", "<html>x</html>", status) == PolicyDecision.ALLOW
    assert status.ok is True
    assert len(coordinator.decisions) == 0


def test_fast_filter_rejects_anonymous_even_with_sysop_group(coordinator: SaferHtmlTag) -> None:
    anon = RequestContext(principal=Principal(name="", groups=frozenset({"sysop"}), anonymous=True))
    status = EditStatus()

    assert coordinator.on_content_merged_filter(anon, "Main Page", "<html>x</html>", status) == PolicyDecision.REJECT
    assert coordinator.decisions[-1].principal == "<anon>"


def test_obfuscated_markup_passes_fast_filter_but_is_vetoed(coordinator: SaferHtmlTag, alice) -> None:
    content = "{{#tag:{{Echo|html}}|<script>x</script>}}"
    status = EditStatus()

    assert coordinator.on_content_merged_filter(alice, "Main Page", content, status) == PolicyDecision.ALLOW
    assert coordinator.on_pre_commit(alice, "Main Page", content, status) == PolicyDecision.VETO
    assert status.fatal is True
    assert status.message_keys == [DENIED_SAVE]


# -- commit veto -----------------------------------------------------------


@pytest.mark.parametrize(
    "content",
    [
        "<html>x</html>",
        "<HTML>x</HTML>",
        "{{#if:1|<html>x</html>|safe}}",
        "{{#if:1|safe|<html>x</html>}}",
        "{{#switch: {{PAGENAME}} | Main Page = safe | #default = <html>x</html> }}",
    ],
)
def test_pre_commit_vetoes_reachable_tag(coordinator: SaferHtmlTag, alice, content: str) -> None:
    status = EditStatus()

    assert coordinator.on_pre_commit(alice, "Main Page", content, status) == PolicyDecision.VETO
    assert status.fatal is True
    record = coordinator.decisions[-1]
    assert (record.hook, record.decision, record.confidence, record.message_key) == (
        "onPreCommit",
        PolicyDecision.VETO,
        Confidence.SEMANTIC,
        DENIED_SAVE,
    )


def test_pre_commit_allows_tag_from_included_template(coordinator: SaferHtmlTag, alice) -> None:
    status = EditStatus()

    assert coordinator.on_pre_commit(alice, "Main Page", "see {{Evil}} and {{Banner}}", status) == PolicyDecision.ALLOW
    assert status.ok is True


def test_pre_commit_skips_non_wikitext(coordinator: SaferHtmlTag, alice) -> None:
    status = EditStatus()
    decision = coordinator.on_pre_commit(alice, "Site.css", "/* <html> */", status, ContentModel.CSS)

    assert decision == PolicyDecision.ALLOW


def test_pre_commit_trusts_authorized_without_expanding(pages: InMemoryPageStore, permissions, sink, admin) -> None:
    settings = RuntimeSettings()
    coordinator = SaferHtmlTag(
        settings=settings,
        pages=pages,
        oracle=PermissionOracle(permissions, settings),
        detector=ExpansionHookDetector(_no_engine),
        messages=sink,
    )
    status = EditStatus()

    assert coordinator.on_pre_commit(admin, "Main Page", "<html>x</html>", status) == PolicyDecision.ALLOW
    assert status.ok is True


# -- read-side permission gate --------------------------------------------


def test_permission_check_rejects_edit_of_page_with_markup(coordinator: SaferHtmlTag, alice, admin) -> None:
    assert coordinator.on_pre_permission_check(alice, "Raw Page", "edit") == PolicyDecision.REJECT
    assert coordinator.on_pre_permission_check(alice, "Main Page", "edit") == PolicyDecision.ALLOW
    assert coordinator.on_pre_permission_check(admin, "Raw Page", "edit") == PolicyDecision.ALLOW
    assert coordinator.decisions[-1].hook == "onPrePermissionCheck"


@pytest.mark.parametrize(
    ("title", "action"),
    [
        ("Raw Page", "view"),
        ("Raw Page", "history"),
        ("Brand New", "edit"),
        ("Site.css", "edit"),
    ],
)
def test_permission_check_skips_out_of_scope_requests(coordinator: SaferHtmlTag, alice, title: str, action: str) -> None:
    assert coordinator.on_pre_permission_check(alice, title, action) == PolicyDecision.ALLOW
    assert len(coordinator.decisions) == 0


def test_permission_check_skips_command_line(coordinator: SaferHtmlTag) -> None:
    maintenance = RequestContext(principal=Principal(name="Maintenance script"), command_line=True)
    assert coordinator.on_pre_permission_check(maintenance, "Raw Page", "edit") == PolicyDecision.ALLOW


def test_permission_burst_memoizes_each_title(permissions, sink, alice) -> None:
    pages = _CountingPages({"Raw Page": "<html>x</html>", "Main Page": "hi"})
    coordinator = SaferHtmlTag.from_settings(
        RuntimeSettings(),
        pages=pages,
        permissions=permissions,
        engine_factory=ReferenceExpansionEngine.factory(pages),
        messages=sink,
    )

    with coordinator.permission_burst(alice.principal) as burst:
        for _ in range(3):
            assert coordinator.on_pre_permission_check(alice, "Raw Page", "edit", burst) == PolicyDecision.REJECT
            assert coordinator.on_pre_permission_check(alice, "Main Page", "edit", burst) == PolicyDecision.ALLOW
        assert pages.reads == 2
        assert len(burst) == 2

        pages.save("Raw Page", "cleaned")
        assert coordinator.on_pre_permission_check(alice, "Raw Page", "edit", burst) == PolicyDecision.REJECT

    with coordinator.permission_burst(alice.principal) as fresh:
        assert coordinator.on_pre_permission_check(alice, "Raw Page", "edit", fresh) == PolicyDecision.ALLOW


def test_permission_burst_belongs_to_one_principal(coordinator: SaferHtmlTag, alice, admin) -> None:
    with coordinator.permission_burst(admin.principal) as burst:
        with pytest.raises(ValueError, match="Permission burst belongs to"):
            coordinator.on_pre_permission_check(alice, "Raw Page", "edit", burst)


# -- global switch and audit ----------------------------------------------


def test_disabled_raw_html_allows_everything(pages: InMemoryPageStore, permissions, sink, alice) -> None:
    coordinator = SaferHtmlTag.from_settings(
        RuntimeSettings(raw_html_enabled=False),
        pages=pages,
        permissions=permissions,
        engine_factory=_no_engine,
        messages=sink,
    )
    status = EditStatus()

    coordinator.on_form_render_begin(alice, "<html>x</html>")
    assert len(coordinator.drafts) == 0
    assert coordinator.on_edit_notices_collected(alice, "Raw Page") is None
    assert coordinator.on_pre_permission_check(alice, "Raw Page", "edit") == PolicyDecision.ALLOW
    assert coordinator.on_content_merged_filter(alice, "Main Page", "<html>x</html>", status) == PolicyDecision.ALLOW
    assert coordinator.on_pre_commit(alice, "Main Page", "<html>x</html>", status) == PolicyDecision.ALLOW
    assert status.ok is True
    assert sink.warnings == []
    assert len(coordinator.decisions) == 0


def test_hook_table_exposes_every_hook(coordinator: SaferHtmlTag) -> None:
    assert set(coordinator.hook_table()) == {
        "onFormRenderBegin",
        "onEditNoticesCollected",
        "onContentMergedFilter",
        "onPrePermissionCheck",
        "onPreCommit",
    }


def test_denials_are_logged_as_canonical_json(
    coordinator: SaferHtmlTag, alice, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO, logger="safer_html_tag.coordinator")

    coordinator.on_content_merged_filter(alice, "Main Page", "<html>x</html>", EditStatus())

    messages = [record.getMessage() for record in caplog.records if record.name == "safer_html_tag.coordinator"]
    assert len(messages) == 1
    payload = json.loads(messages[0].split(": ", 1)[1])
    assert payload == {
        "confidence": "syntactic",
        "decision": "reject",
        "hook": "onContentMergedFilter",
        "message_key": DENIED_EDIT,
        "principal": "Alice",
        "title": "Main Page",
    }


def test_permission_store_is_consulted_per_decision(pages: InMemoryPageStore, sink, alice) -> None:
    permissions = InMemoryPermissionStore()
    coordinator = SaferHtmlTag.from_settings(
        RuntimeSettings(),
        pages=pages,
        permissions=permissions,
        engine_factory=ReferenceExpansionEngine.factory(pages),
        messages=sink,
    )

    assert coordinator.on_content_merged_filter(alice, "Main Page", "<html>x</html>", EditStatus()) == PolicyDecision.REJECT
    permissions.grant("user", "edithtml")
    assert coordinator.on_content_merged_filter(alice, "Main Page", "<html>x</html>", EditStatus()) == PolicyDecision.ALLOW
