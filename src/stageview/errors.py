# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(eq=False)
class StageViewError(Exception):
    """
    Structured engine error with enough context for:
      - clean CLI output
      - HTTP error bodies
      - debugging without full tracebacks
    """
    kind: str
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class BuildNotFound(StageViewError):
    def __init__(self, build_id: str):
        super().__init__("BuildNotFound", f"build {build_id!r} does not exist", {"build": build_id})
        self.build_id = build_id


class TransientReadError(StageViewError):
    def __init__(self, message: str, **details):
        super().__init__("TransientReadError", message, details)


class ApprovalNotFound(StageViewError):
    def __init__(self, build_id: str, approval_id: str):
        super().__init__(
            "ApprovalNotFound",
            f"no pending input {approval_id!r}",
            {"build": build_id, "input": approval_id},
        )
        self.approval_id = approval_id


class CoercionFailure(StageViewError):
    def __init__(self, parameter: str, value, expected: str):
        super().__init__(
            "CoercionFailure",
            f"cannot read {value!r} as {expected}",
            {"parameter": parameter},
        )
        self.parameter = parameter


class InternalInvariantViolation(StageViewError):
    def __init__(self, message: str, **details):
        super().__init__("InternalInvariantViolation", message, details)
