# segmenter.py
from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Dict, List, Optional, Protocol, Tuple

from .errors import InternalInvariantViolation
from .graph import GraphReader, NodeArena, StageSource
from .model import Segment
from .ui.console import get_console


class Segmenter(Protocol):
    """Partition a node snapshot into stage segments, in chronological order."""

    name: str

    def segment(self, build_id: str, arena: NodeArena) -> List[Segment]: ...


class ManualWalkSegmenter:
    """
    Single forward pass.

    A node opens a segment iff it is a labelled boundary. Each segment spans
    [boundary, next boundary) or runs to the end of the snapshot. Nodes before
    the first boundary belong to no segment.
    """
    name = "manual"

    def segment(self, build_id: str, arena: NodeArena) -> List[Segment]:
        segments: List[Segment] = []
        current: Optional[Segment] = None

        for node in arena:
            if node.opens_stage:
                current = Segment(boundary_id=node.id, name=(node.label or "").strip())
                segments.append(current)
            if current is not None:
                current.node_ids.append(node.id)

        return segments


class DelegatedSegmenter:
    """Use the reader's own stage description (accurate status included)."""
    name = "delegated"

    def __init__(self, source: StageSource):
        self.source = source

    def segment(self, build_id: str, arena: NodeArena) -> List[Segment]:
        console = get_console()
        segments: List[Segment] = []
        seen: set[str] = set()

        for desc in self.source.describe_stages(build_id):
            if desc.boundary_id in seen:
                console.print_warning(str(InternalInvariantViolation(
                    "duplicate stage from stage source", build=build_id, stage=desc.boundary_id,
                )))
                continue
            if desc.boundary_id not in arena:
                console.print_warning(str(InternalInvariantViolation(
                    "stage without a boundary node", build=build_id, stage=desc.boundary_id,
                )))
                continue
            seen.add(desc.boundary_id)

            node_ids = [desc.boundary_id]
            node_ids.extend(dict.fromkeys(n for n in desc.node_ids if n != desc.boundary_id and n in arena))
            segments.append(Segment(
                boundary_id=desc.boundary_id,
                name=desc.name,
                node_ids=node_ids,
                status_hint=desc.status,
            ))

        segments.sort(key=lambda s: arena.position(s.boundary_id))
        self._contain(build_id, arena, segments)
        return segments

    def _contain(self, build_id: str, arena: NodeArena, segments: List[Segment]) -> None:
        """Order each segment's nodes and keep them inside [boundary, next boundary)."""
        console = get_console()
        for idx, seg in enumerate(segments):
            start = arena.position(seg.boundary_id)
            stop = arena.position(segments[idx + 1].boundary_id) if idx + 1 < len(segments) else len(arena)

            ordered = sorted(seg.node_ids[1:], key=arena.position)
            inside = [n for n in ordered if start < arena.position(n) < stop]
            if len(inside) != len(ordered):
                stray = [n for n in ordered if n not in inside]
                console.print_warning(str(InternalInvariantViolation(
                    "nodes outside their stage dropped", build=build_id, stage=seg.boundary_id, nodes=stray,
                )))
            seg.node_ids = [seg.boundary_id] + inside


def select_segmenter(reader: GraphReader) -> Segmenter:
    """Probe the reader once; readers that describe their own stages are preferred."""
    describe = getattr(reader, "describe_stages", None)
    if callable(describe):
        get_console().print_debug(f"segmenter: delegated ({type(reader).__name__})")
        return DelegatedSegmenter(reader)  # type: ignore[arg-type]
    get_console().print_debug("segmenter: manual walk")
    return ManualWalkSegmenter()


def membership(segments: List[Segment]) -> Dict[str, int]:
    """node id -> index of the segment that owns it."""
    owner: Dict[str, int] = {}
    for idx, seg in enumerate(segments):
        for node_id in seg.node_ids:
            owner.setdefault(node_id, idx)
    return owner


# ---------------------------------------------------------------------
# Cache (externally owned)
# ---------------------------------------------------------------------

class SegmentCache:
    """
    Latest segment list per build, tagged with its graph_version.

    graph_version is the node count of the append-only snapshot, so a new
    node makes the stored entry stale; the next put replaces it. At most
    max_builds builds are kept, least recently used evicted first. Shared by
    concurrent view builds, so every access holds the lock.
    """

    def __init__(self, max_builds: int = 256) -> None:
        self.max_builds = max_builds
        self._lock = threading.Lock()
        self._entries: OrderedDict[str, Tuple[int, List[Segment]]] = OrderedDict()

    def get(self, build_id: str, version: int) -> Optional[List[Segment]]:
        with self._lock:
            entry = self._entries.get(build_id)
            if entry is None or entry[0] != version:
                return None
            self._entries.move_to_end(build_id)
            return [_copy(s) for s in entry[1]]

    def put(self, build_id: str, version: int, segments: List[Segment]) -> None:
        copied = [_copy(s) for s in segments]
        with self._lock:
            self._entries[build_id] = (version, copied)
            self._entries.move_to_end(build_id)
            while len(self._entries) > self.max_builds:
                self._entries.popitem(last=False)

    def invalidate(self, build_id: str) -> None:
        with self._lock:
            self._entries.pop(build_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _copy(seg: Segment) -> Segment:
    return Segment(
        boundary_id=seg.boundary_id,
        name=seg.name,
        node_ids=list(seg.node_ids),
        status_hint=seg.status_hint,
    )
