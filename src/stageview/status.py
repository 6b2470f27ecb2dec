# status.py
from __future__ import annotations

import time
from typing import Callable, List, Optional, Tuple

from .graph import NodeArena
from .model import Approval, BuildMetadata, Segment, StageStatus

# Terminal build results as reported by the metadata provider.
RESULT_STATUS = {
    "SUCCESS": StageStatus.SUCCESS,
    "FAILURE": StageStatus.FAILED,
    "FAILED": StageStatus.FAILED,
    "ABORTED": StageStatus.ABORTED,
    "UNSTABLE": StageStatus.UNSTABLE,
    "NOT_BUILT": StageStatus.NOT_STARTED,
}


def now_millis() -> int:
    return int(time.time() * 1000)


class StatusResolver:
    """
    Stage status, first match wins:

      1. attached approval          -> PAUSED_PENDING_INPUT
      2. boundary node still active -> IN_PROGRESS
      3. any node reported an error -> FAILED
      4. otherwise                  -> SUCCESS

    A delegated status hint replaces 2-4. Without one, UNSTABLE can only
    appear on the overall build.
    """

    def __init__(self, clock: Callable[[], int] = now_millis):
        self.clock = clock

    def stage_status(
        self,
        arena: NodeArena,
        segment: Segment,
        approval: Optional[Approval] = None,
    ) -> StageStatus:
        if approval is not None:
            return StageStatus.PAUSED_PENDING_INPUT
        if segment.status_hint is not None:
            return segment.status_hint

        start = arena.get(segment.boundary_id)
        if start is not None and start.active:
            return StageStatus.IN_PROGRESS

        for node_id in segment.node_ids:
            node = arena.get(node_id)
            if node is not None and node.error_present:
                return StageStatus.FAILED
        return StageStatus.SUCCESS

    def overall_status(self, meta: BuildMetadata) -> StageStatus:
        if meta.running:
            return StageStatus.IN_PROGRESS
        if meta.result is None:
            return StageStatus.NOT_STARTED
        # present but unrecognized -> UNSTABLE
        return RESULT_STATUS.get(str(meta.result).strip().upper(), StageStatus.UNSTABLE)

    def all_stage_status(self, meta: BuildMetadata, approval: Optional[Approval] = None) -> StageStatus:
        if approval is not None:
            return StageStatus.PAUSED_PENDING_INPUT
        return self.overall_status(meta)

    def build_end(self, meta: BuildMetadata) -> int:
        if meta.running or meta.end_time_millis is None:
            return self.clock()
        return meta.end_time_millis

    def timings(
        self,
        arena: NodeArena,
        segments: List[Segment],
        meta: BuildMetadata,
    ) -> List[Tuple[Optional[int], Optional[int]]]:
        """(start_time_millis, duration_millis) per segment."""
        starts: List[Optional[int]] = []
        for seg in segments:
            node = arena.get(seg.boundary_id)
            starts.append(node.start_time_millis if node is not None else None)

        end = self.build_end(meta)
        out: List[Tuple[Optional[int], Optional[int]]] = []
        for idx, start in enumerate(starts):
            if start is None:
                out.append((None, None))
                continue
            nxt = next((s for s in starts[idx + 1:] if s is not None), end)
            out.append((start, max(0, nxt - start)))
        return out
