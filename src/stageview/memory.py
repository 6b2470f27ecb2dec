# memory.py
from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from .errors import BuildNotFound, TransientReadError
from .model import Approval, BoundValues, BuildMetadata, ExecutionNode, NodeKind


@dataclass
class _Build:
    meta: BuildMetadata
    nodes: List[ExecutionNode] = field(default_factory=list)
    node_logs: Dict[str, str] = field(default_factory=dict)
    build_log: List[str] = field(default_factory=list)
    approvals: List[Approval] = field(default_factory=list)


class InMemoryStore:
    """
    GraphReader + ApprovalRegistry + BuildMetadataProvider over plain dicts.

    Every mutation and every resolve/cancel holds one lock, so at most one
    resolve or cancel per approval id ever returns True.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._builds: Dict[str, _Build] = {}
        self._outcomes: Dict[str, Tuple[str, Optional[BoundValues]]] = {}
        self.fail_reads: set[str] = set()  # build ids whose reads raise TransientReadError

    # ---- setup ----

    def add_build(self, build_id: str, meta: BuildMetadata) -> None:
        with self._lock:
            self._builds[build_id] = _Build(meta=meta)

    def update_build(self, build_id: str, **changes: Any) -> None:
        with self._lock:
            b = self._get(build_id)
            b.meta = replace(b.meta, **changes)

    def append_node(self, build_id: str, node: ExecutionNode, log: Optional[str] = None) -> ExecutionNode:
        with self._lock:
            b = self._get(build_id)
            if log is not None:
                node = replace(node, log_handle=(build_id, node.id))
                b.node_logs[node.id] = log
                b.build_log.append(log if log.endswith("\n") else log + "\n")
            b.nodes.append(node)
            return node

    def boundary(self, build_id: str, node_id: str, label: str, **kwargs: Any) -> ExecutionNode:
        return self.append_node(build_id, ExecutionNode(id=node_id, kind=NodeKind.BOUNDARY, label=label, **kwargs))

    def step(self, build_id: str, node_id: str, log: Optional[str] = None, **kwargs: Any) -> ExecutionNode:
        return self.append_node(build_id, ExecutionNode(id=node_id, kind=NodeKind.STEP, **kwargs), log=log)

    def update_node(self, build_id: str, node_id: str, **changes: Any) -> None:
        with self._lock:
            b = self._get(build_id)
            for idx, node in enumerate(b.nodes):
                if node.id == node_id:
                    b.nodes[idx] = replace(node, **changes)
                    return
            raise KeyError(node_id)

    def append_build_log(self, build_id: str, text: str) -> None:
        with self._lock:
            self._get(build_id).build_log.append(text)

    def add_approval(self, build_id: str, approval: Approval) -> None:
        with self._lock:
            self._get(build_id).approvals.append(approval)

    def outcome(self, approval_id: str) -> Optional[Tuple[str, Optional[BoundValues]]]:
        """("resolved", bound) / ("cancelled", None) once settled."""
        return self._outcomes.get(approval_id)

    # ---- GraphReader ----

    def list_nodes(self, build_id: str) -> List[ExecutionNode]:
        with self._lock:
            b = self._readable(build_id)
            return list(b.nodes)

    def read_log(self, handle: Any) -> str:
        build_id, node_id = handle
        with self._lock:
            b = self._readable(build_id)
            return b.node_logs.get(node_id, "")

    def read_build_log(self, build_id: str) -> str:
        with self._lock:
            return "".join(self._readable(build_id).build_log)

    # ---- BuildMetadataProvider ----

    def describe(self, build_id: str) -> BuildMetadata:
        with self._lock:
            return self._get(build_id).meta

    # ---- ApprovalRegistry ----

    def list_pending(self, build_id: str) -> List[Approval]:
        with self._lock:
            return list(self._readable(build_id).approvals)

    def resolve(self, approval_id: str, bound: BoundValues) -> bool:
        return self._settle(approval_id, "resolved", dict(bound))

    def cancel(self, approval_id: str) -> bool:
        return self._settle(approval_id, "cancelled", None)

    def _settle(self, approval_id: str, state: str, bound: Optional[BoundValues]) -> bool:
        with self._lock:
            for b in self._builds.values():
                for idx, approval in enumerate(b.approvals):
                    if approval.id == approval_id:
                        del b.approvals[idx]
                        self._outcomes[approval_id] = (state, bound)
                        return True
        return False

    # ---- internals ----

    def _get(self, build_id: str) -> _Build:
        b = self._builds.get(build_id)
        if b is None:
            raise BuildNotFound(build_id)
        return b

    def _readable(self, build_id: str) -> _Build:
        b = self._get(build_id)
        if build_id in self.fail_reads:
            raise TransientReadError("simulated read failure", build=build_id)
        return b
