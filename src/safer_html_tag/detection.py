"""Fast syntactic check for the restricted raw-HTML tag.

This is only a cheap pre-filter. It looks for two exact forms and nothing
else: the literal ``<html>`` opening tag, and a ``{{#tag:html`` call once all
whitespace is stripped. Casing, attributes (``<html class="x">``) and other
encodings are not recognised here; the expansion-hook detector is what
catches those at commit time.
"""

from __future__ import annotations

import re

from .models import Confidence, DetectionVerdict

RESTRICTED_TAG = "html"
RESTRICTED_TAG_OPEN = f"<{RESTRICTED_TAG}>"
TAG_FUNCTION_CALL = f"{{{{#tag:{RESTRICTED_TAG}"

_WHITESPACE_RE = re.compile(r"\s+")


def has_restricted_markup(content: str | None) -> bool:
    if not content:
        return False
    if TAG_FUNCTION_CALL in _WHITESPACE_RE.sub("", content):
        return True
    return RESTRICTED_TAG_OPEN in content


def detect(content: str | None) -> DetectionVerdict:
    return DetectionVerdict(
        has_restricted_tag=has_restricted_markup(content),
        confidence=Confidence.SYNTACTIC,
    )
