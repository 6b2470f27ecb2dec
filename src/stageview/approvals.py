# approvals.py
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from .errors import ApprovalNotFound, CoercionFailure
from .graph import ApprovalRegistry
from .model import Approval, BoundValues, ParameterType, RequiredParameter
from .ui.console import get_console


# ---------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------

def parse_bool(value: Any) -> Optional[bool]:
    """True/False for native booleans and case-insensitive "true"/"false"; None otherwise."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text == "true":
            return True
        if text == "false":
            return False
    return None


def default_for(param: RequiredParameter) -> Any:
    if param.declared_type is ParameterType.BOOLEAN:
        parsed = parse_bool(param.default_value)
        return parsed if parsed is not None else False
    if param.default_value is None:
        return None
    return str(param.default_value)


def coerce(param: RequiredParameter, value: Any) -> Any:
    """
    Bind one submitted value to its declared type.

    Raises CoercionFailure when the value cannot be read as that type.
    """
    if param.declared_type is ParameterType.BOOLEAN:
        parsed = parse_bool(value)
        if parsed is None:
            raise CoercionFailure(param.name, value, "boolean")
        return parsed
    # string-like types pass through
    return value if isinstance(value, str) else str(value)


def bind_parameters(approval: Approval, values: Mapping[str, Any]) -> BoundValues:
    """Bound values for every declared parameter, in declaration order."""
    console = get_console()
    bound: Dict[str, Any] = {}

    for param in approval.parameters:
        raw = values.get(param.name)
        if raw is None:
            bound[param.name] = default_for(param)
            continue
        try:
            bound[param.name] = coerce(param, raw)
        except CoercionFailure as e:
            console.print_warning(f"input {approval.id}: {e.message} for {param.name}, using default")
            bound[param.name] = default_for(param)

        if param.declared_type is ParameterType.CHOICE and param.choices:
            keys = [k for k, _ in param.choices]
            if bound[param.name] not in keys:
                console.print_debug(f"input {approval.id}: {param.name}={bound[param.name]!r} not in {keys}")

    ignored = sorted(set(values) - {p.name for p in approval.parameters})
    if ignored:
        console.print_debug(f"input {approval.id}: ignoring unknown parameters {ignored}")
    return bound


# ---------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------

class ApprovalController:
    """
    submit/abort over the registry.

    Binary outcome: True only on confirmed resolution/cancellation. The
    registry guarantees that at most one resolve/cancel per id succeeds.
    """

    def __init__(self, registry: ApprovalRegistry):
        self.registry = registry

    def find(self, build_id: str, approval_id: str) -> Approval:
        for approval in self.registry.list_pending(build_id):
            if approval.id == approval_id:
                return approval
        raise ApprovalNotFound(build_id, approval_id)

    def submit(self, build_id: str, approval_id: str, values: Optional[Mapping[str, Any]] = None) -> bool:
        console = get_console()
        try:
            approval = self.find(build_id, approval_id)
            bound = bind_parameters(approval, values or {})
            console.print_debug(f"[{build_id}] submitting input {approval_id} with {sorted(bound)}")
            ok = self.registry.resolve(approval_id, bound) is True
        except ApprovalNotFound as e:
            console.print_debug(str(e))
            return False
        except Exception as e:
            console.print_warning(f"[{build_id}] submit {approval_id} failed: {e}")
            return False

        if not ok:
            console.print_debug(f"[{build_id}] input {approval_id} was not resolved")
        return ok

    def abort(self, build_id: str, approval_id: str) -> bool:
        console = get_console()
        try:
            self.find(build_id, approval_id)
            ok = self.registry.cancel(approval_id) is True
        except ApprovalNotFound as e:
            console.print_debug(str(e))
            return False
        except Exception as e:
            console.print_warning(f"[{build_id}] abort {approval_id} failed: {e}")
            return False

        if not ok:
            console.print_debug(f"[{build_id}] input {approval_id} was not cancelled")
        return ok
