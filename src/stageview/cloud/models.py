from __future__ import annotations

from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class Build(Base):
    __tablename__ = "builds"
    id: Mapped[str] = mapped_column(sa.Text, primary_key=True)
    job_name: Mapped[str] = mapped_column(sa.Text, nullable=False)
    job_full_name: Mapped[str] = mapped_column(sa.Text, nullable=False)
    number: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    url: Mapped[str] = mapped_column(sa.Text, nullable=False, server_default="")
    running: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    result: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    started_ms: Mapped[int] = mapped_column(sa.BigInteger, nullable=False, default=0)
    finished_ms: Mapped[Optional[int]] = mapped_column(sa.BigInteger, nullable=True)
    console_log: Mapped[str] = mapped_column(sa.Text, nullable=False, default="")


class Node(Base):
    __tablename__ = "nodes"
    build_id: Mapped[str] = mapped_column(sa.Text, sa.ForeignKey("builds.id", ondelete="CASCADE"), primary_key=True)
    node_id: Mapped[str] = mapped_column(sa.Text, primary_key=True)
    seq: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    kind: Mapped[str] = mapped_column(sa.Text, nullable=False)
    label: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    parents: Mapped[list] = mapped_column(sa.JSON, nullable=False, default=list)
    active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    error: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    started_ms: Mapped[int] = mapped_column(sa.BigInteger, nullable=False, default=0)
    log: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)

    __table_args__ = (sa.Index("ix_nodes_build_seq", "build_id", "seq"),)


class ApprovalRow(Base):
    __tablename__ = "approvals"
    id: Mapped[str] = mapped_column(sa.Text, primary_key=True)
    build_id: Mapped[str] = mapped_column(sa.Text, sa.ForeignKey("builds.id", ondelete="CASCADE"), nullable=False)
    seq: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    message: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    submitter: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    proceed_label: Mapped[str] = mapped_column(sa.Text, nullable=False, default="Proceed")
    parameters: Mapped[list] = mapped_column(sa.JSON, nullable=False, default=list)
    origin_node_id: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    state: Mapped[str] = mapped_column(sa.Text, nullable=False, default="pending")  # pending|resolved|cancelled
    bound: Mapped[Optional[dict]] = mapped_column(sa.JSON, nullable=True)

    __table_args__ = (sa.Index("ix_approvals_build_state", "build_id", "state"),)
