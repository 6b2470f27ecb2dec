# builder.py
from __future__ import annotations

from typing import Any, Callable, List, Mapping, Optional

from .approvals import ApprovalController
from .correlator import ApprovalCorrelator, Correlation
from .errors import TransientReadError
from .graph import ApprovalRegistry, BuildMetadataProvider, GraphReader, NodeArena
from .logs import LogAggregator
from .model import ALL_STAGE_ID, ALL_STAGE_NAME, BuildMetadata, BuildView, Segment, Stage
from .segmenter import ManualWalkSegmenter, Segmenter, SegmentCache, select_segmenter
from .status import StatusResolver, now_millis
from .ui.console import get_console


class StageViewBuilder:
    """
    Orchestrates segmenter, log aggregator, correlator and status resolver
    into one BuildView. Pure read: nothing here mutates the collaborators.
    """

    def __init__(
        self,
        reader: GraphReader,
        registry: ApprovalRegistry,
        metadata: BuildMetadataProvider,
        *,
        segmenter: Optional[Segmenter] = None,
        cache: Optional[SegmentCache] = None,
        max_log_chars: Optional[int] = None,
        clock: Callable[[], int] = now_millis,
    ):
        self.reader = reader
        self.metadata = metadata
        self.segmenter = segmenter or select_segmenter(reader)
        self.cache = cache
        self.logs = LogAggregator(reader, max_chars=max_log_chars)
        self.correlator = ApprovalCorrelator(registry)
        self.resolver = StatusResolver(clock=clock)

    # ---- snapshot ----

    def _arena(self, build_id: str) -> NodeArena:
        try:
            return NodeArena.build(self.reader.list_nodes(build_id))
        except TransientReadError as e:
            get_console().print_warning(f"[{build_id}] execution graph unavailable: {e.message}")
            return NodeArena()

    def _segments(self, build_id: str, arena: NodeArena) -> List[Segment]:
        # status hints from a delegated source are not part of the partition
        cacheable = self.cache is not None and isinstance(self.segmenter, ManualWalkSegmenter)
        if cacheable:
            hit = self.cache.get(build_id, arena.version)
            if hit is not None:
                return hit

        try:
            segments = self.segmenter.segment(build_id, arena)
        except TransientReadError as e:
            get_console().print_warning(f"[{build_id}] stage source unavailable: {e.message}")
            return []

        if cacheable:
            self.cache.put(build_id, arena.version, segments)
        return segments

    # ---- views ----

    def build(self, build_id: str, *, include_logs: bool = True, pending_only: bool = False) -> BuildView:
        meta = self.metadata.describe(build_id)  # BuildNotFound propagates
        arena = self._arena(build_id)
        segments = self._segments(build_id, arena)
        correlation = self.correlator.correlate(build_id, arena, segments)

        stages = [self._all_stage(build_id, meta, correlation, include_logs)]
        stages.extend(self._stages(build_id, meta, arena, segments, correlation, include_logs))

        if pending_only:
            stages = [s for s in stages if s.pending]

        get_console().print_debug(
            f"[{build_id}] {len(segments)} stage(s) via {self.segmenter.name}, "
            f"{len(correlation.by_stage)} pending input(s)"
        )
        return BuildView(
            job_name=meta.job_name,
            job_full_name=meta.job_full_name,
            build_number=meta.build_number,
            build_url=meta.build_url,
            overall_status=self.resolver.overall_status(meta),
            running=meta.running,
            stages=stages,
        )

    def _all_stage(
        self,
        build_id: str,
        meta: BuildMetadata,
        correlation: Correlation,
        include_logs: bool,
    ) -> Stage:
        approval = correlation.for_stage(ALL_STAGE_ID)
        start = meta.start_time_millis or None
        duration = max(0, self.resolver.build_end(meta) - start) if start else None
        return Stage(
            id=ALL_STAGE_ID,
            name=ALL_STAGE_NAME,
            status=self.resolver.all_stage_status(meta, approval),
            start_time_millis=start,
            duration_millis=duration,
            logs=self.logs.build_log(build_id) if include_logs else "",
            approval=approval,
        )

    def _stages(
        self,
        build_id: str,
        meta: BuildMetadata,
        arena: NodeArena,
        segments: List[Segment],
        correlation: Correlation,
        include_logs: bool,
    ) -> List[Stage]:
        timings = self.resolver.timings(arena, segments, meta)
        stages: List[Stage] = []

        for seg, (start, duration) in zip(segments, timings):
            approval = correlation.for_stage(seg.boundary_id)
            stages.append(Stage(
                id=seg.boundary_id,
                name=seg.name,
                status=self.resolver.stage_status(arena, seg, approval),
                start_time_millis=start,
                duration_millis=duration,
                logs=self.logs.stage_log(build_id, arena, seg) if include_logs else "",
                approval=approval,
            ))
        return stages


class StageService:
    """The operations the transport layer calls."""

    def __init__(
        self,
        reader: GraphReader,
        registry: ApprovalRegistry,
        metadata: BuildMetadataProvider,
        **builder_options: Any,
    ):
        self.builder = StageViewBuilder(reader, registry, metadata, **builder_options)
        self.controller = ApprovalController(registry)

    def get_stage_view(self, build_id: str) -> BuildView:
        """Stages with a pending input, without logs."""
        return self.builder.build(build_id, include_logs=False, pending_only=True)

    def get_full_stage_view(self, build_id: str) -> BuildView:
        """ALL first, then every stage in chronological order, with logs."""
        return self.builder.build(build_id)

    def get_stage_log(self, build_id: str, stage_id: str) -> Optional[Stage]:
        return self.get_full_stage_view(build_id).stage(stage_id)

    def submit_approval(self, build_id: str, approval_id: str, values: Optional[Mapping[str, Any]] = None) -> bool:
        return self.controller.submit(build_id, approval_id, values)

    def abort_approval(self, build_id: str, approval_id: str) -> bool:
        return self.controller.abort(build_id, approval_id)
