from __future__ import annotations

import pytest

from safer_html_tag.detection import detect, has_restricted_markup
from safer_html_tag.models import Confidence


@pytest.mark.parametrize("content", [None, "", "plain text", "<b>bold</b>", "{{#tag:span|x}}", "<htmlx>"])
def test_content_without_restricted_forms_is_safe(content: str | None) -> None:
    assert has_restricted_markup(content) is False


def test_literal_html_tag_is_detected() -> None:
    assert has_restricted_markup("before <html><b>x</b></html> after")


@pytest.mark.parametrize(
    "content",
    [
        "{{#tag:html|<b>x</b>}}",
        "{{ #tag : html | x }}",
        "{{#tag:\n  html\t|x}}",
        "text {{\n#tag:html}} text",
    ],
)
def test_tag_function_call_is_detected_through_whitespace(content: str) -> None:
    assert has_restricted_markup(content)


@pytest.mark.parametrize(
    "content",
    [
        "<HTML>x</HTML>",
        "<Html>x</Html>",
        '<html class="x">y</html>',
        "< html>x",
        "{{#tag:HTML|x}}",
        "{{#TAG:html|x}}",
    ],
)
def test_exact_casing_and_bracket_shape_are_required(content: str) -> None:
    # Known limitation of the fast scan; the expansion check catches these.
    assert has_restricted_markup(content) is False


def test_detect_reports_syntactic_confidence() -> None:
    verdict = detect("<html>x</html>")
    assert verdict.has_restricted_tag is True
    assert verdict.confidence == Confidence.SYNTACTIC
    assert detect("nothing here").has_restricted_tag is False
