from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Protocol

from .models import PageTitle, PermissionVerdict, Principal
from .settings import RuntimeSettings

logger = logging.getLogger(__name__)


class PermissionStore(Protocol):
    """Host user/permission store, consumed at its interface only."""

    def is_anonymous(self, principal: Principal) -> bool: ...

    def has_permission(self, principal: Principal, permission: str) -> bool: ...

    def get_groups(self, principal: Principal) -> Iterable[str]: ...


class InMemoryPermissionStore:
    """Group → granted permissions matrix, resolved per principal.

    Mirrors how a wiki grants rights: a principal holds a permission when any
    of its groups (plus the implicit ``*`` and, for named users, ``user``
    groups) grants it.
    """

    def __init__(self, grants: Mapping[str, Iterable[str]] | None = None) -> None:
        self._grants: dict[str, frozenset[str]] = {
            group: frozenset(perms) for group, perms in (grants or {}).items()
        }

    def grant(self, group: str, permission: str) -> None:
        self._grants[group] = self._grants.get(group, frozenset()) | {permission}

    def is_anonymous(self, principal: Principal) -> bool:
        return principal.anonymous or not principal.name

    def get_groups(self, principal: Principal) -> list[str]:
        implicit = ["*"] if self.is_anonymous(principal) else ["*", "user"]
        return implicit + sorted(principal.groups)

    def has_permission(self, principal: Principal, permission: str) -> bool:
        return any(permission in self._grants.get(group, ()) for group in self.get_groups(principal))


class PermissionOracle:
    """Answers whether a principal may work with the restricted tag.

    Anonymous principals are always refused. Everyone else is authorized by
    the configured permission, or by membership of ``sysop`` / the configured
    editor group. Nothing is cached here; callers memoize per burst.
    """

    def __init__(self, store: PermissionStore, settings: RuntimeSettings) -> None:
        self._store = store
        self._permission = settings.required_permission
        self._editor_groups = frozenset(settings.editor_groups)

    @property
    def permission(self) -> str:
        return self._permission

    def is_authorized(self, principal: Principal) -> bool:
        if self._store.is_anonymous(principal):
            return False
        if self._store.has_permission(principal, self._permission):
            return True
        return not self._editor_groups.isdisjoint(self._store.get_groups(principal))

    def verdict(self, principal: Principal) -> PermissionVerdict:
        return PermissionVerdict(authorized=self.is_authorized(principal), permission=self._permission)


@dataclass
class PermissionBurst:
    """Memoized edit-eligibility verdicts for one batch of permission checks.

    A burst belongs to one principal and lives only as long as the caller
    keeps it; it is never stored globally.
    """

    principal: Principal
    _verdicts: dict[PageTitle, bool] = field(default_factory=dict, repr=False)

    def get(self, title: PageTitle) -> bool | None:
        return self._verdicts.get(title)

    def put(self, title: PageTitle, allowed: bool) -> bool:
        self._verdicts[title] = allowed
        return allowed

    def __contains__(self, title: object) -> bool:
        return title in self._verdicts

    def __len__(self) -> int:
        return len(self._verdicts)
