from importlib.metadata import version

from .canonical import to_canonical_json
from .context import DraftStore, RequestContext
from .coordinator import SaferHtmlTag
from .detection import detect, has_restricted_markup
from .expansion import (
    EngineFactory,
    ExpansionBudgetExceeded,
    ExpansionEngine,
    ExpansionHookDetector,
    ExpansionHooks,
    ExpansionOptions,
)
from .lifecycle import EditLifecycle, LifecycleResult
from .messages import CollectingMessageSink, MessageCatalog, MessageSink, load_catalog
from .models import (
    Confidence,
    ContentModel,
    DecisionRecord,
    DetectionVerdict,
    EditCandidate,
    EditPhase,
    EditStatus,
    PermissionVerdict,
    PolicyDecision,
    Principal,
    StatusMessage,
)
from .permissions import InMemoryPermissionStore, PermissionBurst, PermissionOracle, PermissionStore
from .settings import RuntimeSettings
from .wikitext import InMemoryPageStore, ReferenceExpansionEngine, normalize_title


def get_version() -> str:
    try:
        return version("safer-html-tag")
    except Exception:
        return "0.0.0"


__all__ = [
    "CollectingMessageSink",
    "Confidence",
    "ContentModel",
    "DecisionRecord",
    "DetectionVerdict",
    "DraftStore",
    "EditCandidate",
    "EditLifecycle",
    "EditPhase",
    "EditStatus",
    "EngineFactory",
    "ExpansionBudgetExceeded",
    "ExpansionEngine",
    "ExpansionHookDetector",
    "ExpansionHooks",
    "ExpansionOptions",
    "InMemoryPageStore",
    "InMemoryPermissionStore",
    "LifecycleResult",
    "MessageCatalog",
    "MessageSink",
    "PermissionBurst",
    "PermissionOracle",
    "PermissionStore",
    "PermissionVerdict",
    "PolicyDecision",
    "Principal",
    "ReferenceExpansionEngine",
    "RequestContext",
    "RuntimeSettings",
    "SaferHtmlTag",
    "StatusMessage",
    "detect",
    "get_version",
    "has_restricted_markup",
    "load_catalog",
    "normalize_title",
    "to_canonical_json",
]
