"""Entry point for `python -m safer_html_tag` and the `safer-html-tag` CLI script.

Runs one edit through the full lifecycle against pages loaded from a JSON
fixture file and prints the outcome as canonical JSON.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from dotenv import load_dotenv

from safer_html_tag.canonical import to_canonical_json
from safer_html_tag.context import RequestContext
from safer_html_tag.coordinator import SaferHtmlTag
from safer_html_tag.lifecycle import EditLifecycle
from safer_html_tag.messages import CollectingMessageSink
from safer_html_tag.models import ContentModel, Principal
from safer_html_tag.permissions import InMemoryPermissionStore
from safer_html_tag.settings import RuntimeSettings
from safer_html_tag.wikitext import InMemoryPageStore, ReferenceExpansionEngine, normalize_title


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Check an edit against the restricted <html> tag policy")
    parser.add_argument("--pages-file", type=Path, default=None, help="JSON page fixtures the edit is checked against")
    parser.add_argument("--title", required=True, help="Title of the page being edited")
    parser.add_argument("--content-file", type=Path, default=None, help="Path to the submitted page text")
    parser.add_argument("--content-text", default=None, help="Inline submitted page text (mutually exclusive with --content-file)")
    parser.add_argument(
        "--content-model",
        type=lambda value: value.lower(),
        default=ContentModel.WIKITEXT.value,
        choices=[model.value for model in ContentModel],
        help="Content model of the submitted text",
    )
    parser.add_argument("--user", default="", help="Name of the acting user")
    parser.add_argument("--group", action="append", default=[], help="Group of the acting user (repeatable)")
    parser.add_argument("--anonymous", action="store_true", help="Act as an anonymous user")
    parser.add_argument(
        "--grant",
        action="append",
        default=[],
        metavar="GROUP=PERMISSION",
        help="Grant a permission to a group (repeatable)",
    )
    parser.add_argument("--save-pages", action="store_true", help="Write the updated pages back to --pages-file on commit")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )
    return parser.parse_args(argv)


def load_submitted_content(*, content_file: Path | None, content_text: str | None) -> str:
    if content_text is not None and content_file is not None:
        raise ValueError("content_text cannot be combined with content_file input")
    if content_text is not None:
        return content_text
    if content_file is not None:
        if not content_file.is_file():
            raise FileNotFoundError(f"Submitted content file does not exist: {content_file}")
        return content_file.read_text(encoding="utf-8")
    raise ValueError("one of --content-file or --content-text is required")


def parse_grants(raw_grants: list[str]) -> dict[str, set[str]]:
    grants: dict[str, set[str]] = {}
    for raw in raw_grants:
        group, sep, permission = raw.partition("=")
        if not sep or not group.strip() or not permission.strip():
            raise ValueError(f"--grant must look like GROUP=PERMISSION, got: {raw!r}")
        grants.setdefault(group.strip(), set()).add(permission.strip())
    return grants


def build_principal(args: argparse.Namespace) -> Principal:
    if args.anonymous:
        return Principal.anon()
    name = args.user.strip()
    if not name:
        raise ValueError("--user is required unless --anonymous is given")
    return Principal(name=name, groups=frozenset(group.strip() for group in args.group if group.strip()))


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    env_path = Path.cwd() / ".env"
    if env_path.is_file():
        load_dotenv(env_path)

    try:
        settings = RuntimeSettings.from_env()
        content = load_submitted_content(content_file=args.content_file, content_text=args.content_text)
        pages = InMemoryPageStore.from_json_file(args.pages_file) if args.pages_file is not None else InMemoryPageStore()
        permissions = InMemoryPermissionStore(parse_grants(args.grant))
        principal = build_principal(args)
        if args.save_pages and args.pages_file is None:
            raise ValueError("--save-pages requires --pages-file")
    except (OSError, ValueError) as exc:
        logging.error("Unable to load edit input: %s", exc)
        return 2

    sink = CollectingMessageSink()
    coordinator = SaferHtmlTag.from_settings(
        settings,
        pages=pages,
        permissions=permissions,
        engine_factory=ReferenceExpansionEngine.factory(pages, raw_html=settings.raw_html_enabled),
        messages=sink,
    )
    lifecycle = EditLifecycle(coordinator=coordinator, writer=pages)
    title = normalize_title(args.title)
    result = lifecycle.run(
        context=RequestContext(principal=principal),
        title=title,
        submitted=content,
        draft=content,
        content_model=ContentModel(args.content_model),
    )

    if result.committed and args.save_pages:
        args.pages_file.write_text(pages.to_json() + "\n", encoding="utf-8")

    print(
        to_canonical_json(
            {
                "title": title,
                "phase": result.phase,
                "committed": result.committed,
                "notice": result.notice,
                "warnings": sink.warnings,
                "status": result.status,
            }
        )
    )
    return 0 if result.committed else 1


if __name__ == "__main__":
    raise SystemExit(main())
