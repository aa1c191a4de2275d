from __future__ import annotations

import os
import re
from dataclasses import dataclass

_PERMISSION_RE = re.compile(r"^[a-z][a-z0-9_-]*$")
_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


@dataclass(frozen=True)
class RuntimeSettings:
    """Runtime settings loaded from environment with fail-fast validation."""

    raw_html_enabled: bool = True
    required_permission: str = "edithtml"
    editor_group: str = ""
    max_expansion_depth: int = 40
    max_expansion_nodes: int = 1_000_000
    fail_closed_on_budget: bool = True

    @classmethod
    def from_env(cls) -> "RuntimeSettings":
        return cls(
            raw_html_enabled=_get_env_bool("SAFERHTML_RAW_HTML", default=True),
            required_permission=os.getenv("SAFERHTML_PERMISSION", "edithtml"),
            editor_group=os.getenv("SAFERHTML_EDITOR_GROUP", ""),
            max_expansion_depth=_get_env_int("SAFERHTML_MAX_EXPANSION_DEPTH", default=40, minimum=1, maximum=100),
            max_expansion_nodes=_get_env_int("SAFERHTML_MAX_EXPANSION_NODES", default=1_000_000, minimum=100),
            fail_closed_on_budget=_get_env_bool("SAFERHTML_FAIL_CLOSED_ON_BUDGET", default=True),
        ).normalized()

    @property
    def editor_groups(self) -> tuple[str, ...]:
        """Groups allowed to work with the restricted tag, ``sysop`` always included."""
        if self.editor_group and self.editor_group != "sysop":
            return ("sysop", self.editor_group)
        return ("sysop",)

    def normalized(self) -> "RuntimeSettings":
        """Validate and normalize all fields. Raises ValueError on invalid configuration."""
        required_permission = self.required_permission.strip().lower()
        if not required_permission:
            raise ValueError("SAFERHTML_PERMISSION must be non-empty")
        if not _PERMISSION_RE.match(required_permission):
            raise ValueError(
                f"SAFERHTML_PERMISSION must be a lowercase permission name, got: {self.required_permission!r}"
            )

        # Group names are compared verbatim against the store's group list.
        editor_group = self.editor_group.strip()
        if any(ch.isspace() for ch in editor_group):
            raise ValueError(f"SAFERHTML_EDITOR_GROUP must not contain whitespace, got: {self.editor_group!r}")

        if self.max_expansion_depth < 1:
            raise ValueError(f"SAFERHTML_MAX_EXPANSION_DEPTH must be >= 1, got: {self.max_expansion_depth}")
        if self.max_expansion_nodes < 1:
            raise ValueError(f"SAFERHTML_MAX_EXPANSION_NODES must be >= 1, got: {self.max_expansion_nodes}")

        return RuntimeSettings(
            raw_html_enabled=bool(self.raw_html_enabled),
            required_permission=required_permission,
            editor_group=editor_group,
            max_expansion_depth=self.max_expansion_depth,
            max_expansion_nodes=self.max_expansion_nodes,
            fail_closed_on_budget=bool(self.fail_closed_on_budget),
        )


def _get_env_int(name: str, default: int, minimum: int, maximum: int = 10_000_000) -> int:
    """Read an expansion limit such as ``SAFERHTML_MAX_EXPANSION_NODES``.

    Unset variables give ``default``; set ones must parse as an integer in
    ``[minimum, maximum]``.

    Raises:
        ValueError: Naming the variable, when the value is not an integer or
            falls outside the bounds.
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got: {raw!r}") from exc
    if parsed < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got: {parsed}")
    if parsed > maximum:
        raise ValueError(f"{name} must be <= {maximum}, got: {parsed}")
    return parsed


def _get_env_bool(name: str, default: bool) -> bool:
    """Parse a boolean switch such as ``1``/``0`` or ``true``/``false``.

    Raises:
        ValueError: If the value is set but not a recognised switch value.
    """
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean (true/false, 1/0, yes/no, on/off), got: {raw!r}")
