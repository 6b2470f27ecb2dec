# correlator.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import TransientReadError
from .graph import ApprovalRegistry, NodeArena
from .model import ALL_STAGE_ID, Approval, Segment
from .segmenter import membership
from .ui.console import get_console


@dataclass
class Correlation:
    """Approvals keyed by stage id ("ALL" for the ones no segment owns)."""
    by_stage: Dict[str, Approval] = field(default_factory=dict)
    shadowed: List[Approval] = field(default_factory=list)

    def for_stage(self, stage_id: str) -> Optional[Approval]:
        return self.by_stage.get(stage_id)


class ApprovalCorrelator:
    def __init__(self, registry: ApprovalRegistry):
        self.registry = registry

    def pending(self, build_id: str) -> List[Approval]:
        try:
            return list(self.registry.list_pending(build_id))
        except TransientReadError as e:
            get_console().print_warning(f"[{build_id}] pending inputs unavailable: {e.message}")
            return []

    def correlate(
        self,
        build_id: str,
        arena: NodeArena,
        segments: List[Segment],
        approvals: Optional[List[Approval]] = None,
    ) -> Correlation:
        if approvals is None:
            approvals = self.pending(build_id)

        owner = membership(segments)
        result = Correlation()

        for approval in approvals:
            stage_id = self.locate(arena, segments, owner, approval.origin_node_id)
            if stage_id in result.by_stage:
                # one approval per stage; later ones stay in the registry
                result.shadowed.append(approval)
                get_console().print_debug(
                    f"[{build_id}] input {approval.id} shares stage {stage_id} with "
                    f"{result.by_stage[stage_id].id}; not shown"
                )
                continue
            result.by_stage[stage_id] = approval

        return result

    def locate(
        self,
        arena: NodeArena,
        segments: List[Segment],
        owner: Dict[str, int],
        origin_node_id: Optional[str],
    ) -> str:
        if origin_node_id is None:
            return ALL_STAGE_ID

        idx = owner.get(origin_node_id)
        if idx is not None:
            return segments[idx].boundary_id

        # known node outside every segment: the stage opened on its primary lineage
        boundary = arena.enclosing_boundary(origin_node_id)
        if boundary is not None:
            idx = owner.get(boundary.id)
            if idx is not None:
                return segments[idx].boundary_id

        return ALL_STAGE_ID
