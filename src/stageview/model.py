# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


ALL_STAGE_ID = "ALL"
ALL_STAGE_NAME = "ALL"
DEFAULT_PROCEED_LABEL = "Proceed"


class NodeKind(str, Enum):
    BOUNDARY = "boundary"
    STEP = "step"
    OTHER = "other"


class StageStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    ABORTED = "ABORTED"
    PAUSED_PENDING_INPUT = "PAUSED_PENDING_INPUT"
    UNSTABLE = "UNSTABLE"


class ParameterType(str, Enum):
    STRING = "string"
    TEXT = "text"
    PASSWORD = "password"
    BOOLEAN = "boolean"
    CHOICE = "choice"
    OTHER = "other"

    @property
    def input_type(self) -> str:
        """Presentation hint for form renderers."""
        return _INPUT_TYPES.get(self, "text")


_INPUT_TYPES = {
    ParameterType.STRING: "text",
    ParameterType.TEXT: "textarea",
    ParameterType.PASSWORD: "password",
    ParameterType.BOOLEAN: "checkbox",
    ParameterType.CHOICE: "select",
}


@dataclass(frozen=True)
class ExecutionNode:
    """One recorded step/action in a build's execution history."""
    id: str
    kind: NodeKind = NodeKind.STEP
    label: str | None = None
    parents: Tuple[str, ...] = ()
    active: bool = False
    error_present: bool = False
    start_time_millis: int = 0
    log_handle: Any = None

    @property
    def primary_parent(self) -> str | None:
        # only the first parent is followed when climbing to a stage
        return self.parents[0] if self.parents else None

    @property
    def opens_stage(self) -> bool:
        return self.kind is NodeKind.BOUNDARY and bool((self.label or "").strip())


@dataclass(frozen=True)
class RequiredParameter:
    name: str
    declared_type: ParameterType = ParameterType.STRING
    description: str | None = None
    default_value: Any = None
    choices: Tuple[Tuple[str, str], ...] = ()
    required: bool = False

    @property
    def input_type(self) -> str:
        return self.declared_type.input_type


@dataclass(frozen=True)
class Approval:
    """A pause point awaiting externally supplied parameter values."""
    id: str
    message: str | None = None
    submitter_pattern: str | None = None  # None -> anyone may submit
    proceed_label: str = DEFAULT_PROCEED_LABEL
    parameters: Tuple[RequiredParameter, ...] = ()
    origin_node_id: str | None = None


@dataclass(frozen=True)
class BuildMetadata:
    job_name: str
    job_full_name: str
    build_number: int
    build_url: str = ""
    running: bool = False
    result: str | None = None
    start_time_millis: int = 0
    end_time_millis: int | None = None


@dataclass
class Segment:
    """The node range owned by one stage."""
    boundary_id: str
    name: str
    node_ids: List[str] = field(default_factory=list)

    # Only the delegated strategy knows more than node flags can tell.
    status_hint: Optional[StageStatus] = None


@dataclass
class Stage:
    id: str
    name: str
    status: StageStatus = StageStatus.NOT_STARTED
    start_time_millis: int | None = None
    duration_millis: int | None = None
    logs: str = ""
    approval: Optional[Approval] = None

    @property
    def executed(self) -> bool:
        return self.status is not StageStatus.NOT_STARTED

    @property
    def pending(self) -> bool:
        return self.approval is not None


@dataclass
class BuildView:
    job_name: str
    job_full_name: str
    build_number: int
    build_url: str
    overall_status: StageStatus
    running: bool
    stages: List[Stage] = field(default_factory=list)

    def stage(self, stage_id: str) -> Optional[Stage]:
        for s in self.stages:
            if s.id == stage_id:
                return s
        return None

    @property
    def pending_stages(self) -> List[Stage]:
        return [s for s in self.stages if s.pending]

    @property
    def has_pending(self) -> bool:
        return any(s.pending for s in self.stages)

    def stage_names(self) -> List[str]:
        return [s.name for s in self.stages]


BoundValues = Dict[str, Any]
