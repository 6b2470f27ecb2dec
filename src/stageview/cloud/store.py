from __future__ import annotations

import socket
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ..errors import BuildNotFound, TransientReadError
from ..model import (
    Approval,
    BoundValues,
    BuildMetadata,
    ExecutionNode,
    NodeKind,
    ParameterType,
    RequiredParameter,
)
from .db import make_sessionmaker
from .models import ApprovalRow, Base, Build, Node
from .redislock import ApprovalLock


# -------------------- Row <-> model --------------------

def parameter_to_dict(p: RequiredParameter) -> Dict[str, Any]:
    return {
        "name": p.name,
        "type": p.declared_type.value,
        "description": p.description,
        "default": p.default_value,
        "choices": [[k, v] for k, v in p.choices],
        "required": p.required,
    }


def parameter_from_dict(data: Dict[str, Any]) -> RequiredParameter:
    try:
        declared = ParameterType(data.get("type") or "string")
    except ValueError:
        declared = ParameterType.OTHER
    return RequiredParameter(
        name=data["name"],
        declared_type=declared,
        description=data.get("description"),
        default_value=data.get("default"),
        choices=tuple((str(k), str(v)) for k, v in data.get("choices") or []),
        required=bool(data.get("required", False)),
    )


def _node(row: Node) -> ExecutionNode:
    try:
        kind = NodeKind(row.kind)
    except ValueError:
        kind = NodeKind.OTHER
    return ExecutionNode(
        id=row.node_id,
        kind=kind,
        label=row.label,
        parents=tuple(row.parents or ()),
        active=row.active,
        error_present=row.error,
        start_time_millis=row.started_ms,
        log_handle=(row.build_id, row.node_id) if row.log is not None else None,
    )


def _approval(row: ApprovalRow) -> Approval:
    return Approval(
        id=row.id,
        message=row.message,
        submitter_pattern=row.submitter,
        proceed_label=row.proceed_label or "Proceed",
        parameters=tuple(parameter_from_dict(p) for p in row.parameters or ()),
        origin_node_id=row.origin_node_id,
    )


# -------------------- Store --------------------

class SqlStore:
    """
    GraphReader + ApprovalRegistry + BuildMetadataProvider over SQLAlchemy.

    resolve/cancel flip state with a conditional UPDATE (state = 'pending'),
    so only one caller per approval id sees rowcount == 1.
    """

    def __init__(self, engine: Engine, lock: Optional[ApprovalLock] = None):
        self.engine = engine
        self.sessions: sessionmaker[Session] = make_sessionmaker(engine)
        self.lock = lock or ApprovalLock(None, owner=socket.gethostname())

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    @contextmanager
    def _reading(self, build_id: str) -> Iterator[Session]:
        try:
            with self.sessions() as s:
                yield s
        except sa.exc.OperationalError as e:
            raise TransientReadError(f"database read failed: {e.orig}", build=build_id) from e

    # ---- writes used by producers / fixtures ----

    def create_build(self, build_id: str, meta: BuildMetadata) -> None:
        with self.sessions() as s, s.begin():
            s.add(Build(
                id=build_id,
                job_name=meta.job_name,
                job_full_name=meta.job_full_name,
                number=meta.build_number,
                url=meta.build_url,
                running=meta.running,
                result=meta.result,
                started_ms=meta.start_time_millis,
                finished_ms=meta.end_time_millis,
                console_log="",
            ))

    def finish_build(self, build_id: str, result: str, finished_ms: int) -> None:
        with self.sessions() as s, s.begin():
            b = s.get(Build, build_id)
            if b is None:
                raise BuildNotFound(build_id)
            b.running = False
            b.result = result
            b.finished_ms = finished_ms

    def append_node(self, build_id: str, node: ExecutionNode, log: Optional[str] = None) -> None:
        with self.sessions() as s, s.begin():
            b = s.get(Build, build_id)
            if b is None:
                raise BuildNotFound(build_id)
            seq = s.execute(
                sa.select(sa.func.count()).select_from(Node).where(Node.build_id == build_id)
            ).scalar_one()
            s.add(Node(
                build_id=build_id,
                node_id=node.id,
                seq=seq,
                kind=node.kind.value,
                label=node.label,
                parents=list(node.parents),
                active=node.active,
                error=node.error_present,
                started_ms=node.start_time_millis,
                log=log,
            ))
            if log:
                b.console_log = (b.console_log or "") + (log if log.endswith("\n") else log + "\n")

    def set_node_state(self, build_id: str, node_id: str, *, active: bool, error: bool = False) -> None:
        with self.sessions() as s, s.begin():
            row = s.get(Node, (build_id, node_id))
            if row is None:
                raise KeyError(node_id)
            row.active = active
            row.error = error

    def append_console(self, build_id: str, text: str) -> None:
        with self.sessions() as s, s.begin():
            b = s.get(Build, build_id)
            if b is None:
                raise BuildNotFound(build_id)
            b.console_log = (b.console_log or "") + text

    def add_approval(self, build_id: str, approval: Approval) -> None:
        with self.sessions() as s, s.begin():
            seq = s.execute(
                sa.select(sa.func.count()).select_from(ApprovalRow).where(ApprovalRow.build_id == build_id)
            ).scalar_one()
            s.add(ApprovalRow(
                id=approval.id,
                build_id=build_id,
                seq=seq,
                message=approval.message,
                submitter=approval.submitter_pattern,
                proceed_label=approval.proceed_label,
                parameters=[parameter_to_dict(p) for p in approval.parameters],
                origin_node_id=approval.origin_node_id,
                state="pending",
            ))

    def bound_values(self, approval_id: str) -> Optional[dict]:
        with self.sessions() as s:
            row = s.get(ApprovalRow, approval_id)
            return row.bound if row is not None else None

    # ---- BuildMetadataProvider ----

    def describe(self, build_id: str) -> BuildMetadata:
        with self._reading(build_id) as s:
            b = s.get(Build, build_id)
            if b is None:
                raise BuildNotFound(build_id)
            return BuildMetadata(
                job_name=b.job_name,
                job_full_name=b.job_full_name,
                build_number=b.number,
                build_url=b.url,
                running=b.running,
                result=b.result,
                start_time_millis=b.started_ms,
                end_time_millis=b.finished_ms,
            )

    # ---- GraphReader ----

    def list_nodes(self, build_id: str) -> List[ExecutionNode]:
        with self._reading(build_id) as s:
            if s.get(Build, build_id) is None:
                raise BuildNotFound(build_id)
            rows = s.execute(
                sa.select(Node).where(Node.build_id == build_id).order_by(Node.seq)
            ).scalars().all()
            return [_node(r) for r in rows]

    def read_log(self, handle: Any) -> str:
        build_id, node_id = handle
        with self._reading(build_id) as s:
            row = s.get(Node, (build_id, node_id))
            return (row.log or "") if row is not None else ""

    def read_build_log(self, build_id: str) -> str:
        with self._reading(build_id) as s:
            b = s.get(Build, build_id)
            if b is None:
                raise BuildNotFound(build_id)
            return b.console_log or ""

    # ---- ApprovalRegistry ----

    def list_pending(self, build_id: str) -> List[Approval]:
        with self._reading(build_id) as s:
            rows = s.execute(
                sa.select(ApprovalRow)
                .where(ApprovalRow.build_id == build_id, ApprovalRow.state == "pending")
                .order_by(ApprovalRow.seq)
            ).scalars().all()
            return [_approval(r) for r in rows]

    def resolve(self, approval_id: str, bound: BoundValues) -> bool:
        return self._settle(approval_id, "resolved", dict(bound))

    def cancel(self, approval_id: str) -> bool:
        return self._settle(approval_id, "cancelled", None)

    def _settle(self, approval_id: str, state: str, bound: Optional[dict]) -> bool:
        if not self.lock.acquire(approval_id):
            return False
        try:
            with self.sessions() as s, s.begin():
                res = s.execute(
                    sa.update(ApprovalRow)
                    .where(ApprovalRow.id == approval_id, ApprovalRow.state == "pending")
                    .values(state=state, bound=bound)
                    .execution_options(synchronize_session=False)
                )
                return res.rowcount == 1
        finally:
            self.lock.release(approval_id)
