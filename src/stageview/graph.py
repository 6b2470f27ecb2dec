# graph.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol, runtime_checkable

from .model import Approval, BoundValues, BuildMetadata, ExecutionNode, StageStatus
from .ui.console import get_console


# ---------------------------------------------------------------------
# Collaborator contracts
# ---------------------------------------------------------------------

class GraphReader(Protocol):
    """
    Source of a build's execution history.

    list_nodes() returns a chronologically ordered snapshot; a running build
    may return more nodes on the next call. Raises BuildNotFound or
    TransientReadError.
    """

    def list_nodes(self, build_id: str) -> List[ExecutionNode]: ...

    def read_log(self, handle: Any) -> str: ...

    def read_build_log(self, build_id: str) -> str: ...


@dataclass(frozen=True)
class StageDescriptor:
    """A stage as reported by an accurate (delegated) stage source."""
    boundary_id: str
    name: str
    node_ids: tuple[str, ...] = ()
    status: Optional[StageStatus] = None


@runtime_checkable
class StageSource(Protocol):
    """Optional reader capability: the reader already knows the stages."""

    def describe_stages(self, build_id: str) -> List[StageDescriptor]: ...


class ApprovalRegistry(Protocol):
    def list_pending(self, build_id: str) -> List[Approval]: ...

    def resolve(self, approval_id: str, bound: BoundValues) -> bool: ...

    def cancel(self, approval_id: str) -> bool: ...


class BuildMetadataProvider(Protocol):
    def describe(self, build_id: str) -> BuildMetadata: ...


# ---------------------------------------------------------------------
# Node arena (snapshot + primary lineage)
# ---------------------------------------------------------------------

@dataclass
class NodeArena:
    """
    Ordered node snapshot with an id index and a first-parent pointer.

    The execution graph is a DAG; climbing follows the primary lineage only.
    """
    nodes: List[ExecutionNode] = field(default_factory=list)
    index: Dict[str, int] = field(default_factory=dict)
    parent_index: List[Optional[int]] = field(default_factory=list)

    @classmethod
    def build(cls, nodes: Iterable[ExecutionNode]) -> NodeArena:
        arena = cls()
        dropped: List[str] = []
        for node in nodes:
            if node.id in arena.index:
                dropped.append(node.id)
                continue
            arena.index[node.id] = len(arena.nodes)
            arena.nodes.append(node)

        if dropped:
            get_console().print_warning(f"duplicate node ids dropped from snapshot: {sorted(set(dropped))}")

        # parents may point forward or to unknown ids in a moving snapshot
        for node in arena.nodes:
            parent = node.primary_parent
            arena.parent_index.append(arena.index.get(parent) if parent is not None else None)
        return arena

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[ExecutionNode]:
        return iter(self.nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.index

    def get(self, node_id: str) -> Optional[ExecutionNode]:
        pos = self.index.get(node_id)
        return self.nodes[pos] if pos is not None else None

    def position(self, node_id: str) -> Optional[int]:
        return self.index.get(node_id)

    @property
    def version(self) -> int:
        # append-only store: the node count identifies the snapshot
        return len(self.nodes)

    def primary_lineage(self, node_id: str) -> Iterator[ExecutionNode]:
        """Yield the node's first-parent ancestors, nearest first."""
        pos = self.index.get(node_id)
        if pos is None:
            return
        seen = {pos}
        nxt = self.parent_index[pos]
        while nxt is not None and nxt not in seen:
            seen.add(nxt)
            yield self.nodes[nxt]
            nxt = self.parent_index[nxt]

    def enclosing_boundary(self, node_id: str) -> Optional[ExecutionNode]:
        """First stage-opening node on the primary lineage (the node itself included)."""
        node = self.get(node_id)
        if node is None:
            return None
        if node.opens_stage:
            return node
        for ancestor in self.primary_lineage(node_id):
            if ancestor.opens_stage:
                return ancestor
        return None
