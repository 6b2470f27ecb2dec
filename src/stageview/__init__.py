from .builder import StageService, StageViewBuilder
from .errors import (
    ApprovalNotFound,
    BuildNotFound,
    CoercionFailure,
    InternalInvariantViolation,
    StageViewError,
    TransientReadError,
)
from .memory import InMemoryStore
from .model import (
    Approval,
    BuildMetadata,
    BuildView,
    ExecutionNode,
    NodeKind,
    ParameterType,
    RequiredParameter,
    Stage,
    StageStatus,
)
from .segmenter import SegmentCache

__all__ = [
    "StageService",
    "StageViewBuilder",
    "InMemoryStore",
    "SegmentCache",
    "Approval",
    "BuildMetadata",
    "BuildView",
    "ExecutionNode",
    "NodeKind",
    "ParameterType",
    "RequiredParameter",
    "Stage",
    "StageStatus",
    "StageViewError",
    "BuildNotFound",
    "TransientReadError",
    "ApprovalNotFound",
    "CoercionFailure",
    "InternalInvariantViolation",
]
