# logs.py
from __future__ import annotations

from typing import List, Optional

from .errors import TransientReadError
from .graph import GraphReader, NodeArena
from .model import Segment
from .ui.console import get_console

TRUNCATION_MARKER = "... [log truncated]\n"


class LogAggregator:
    """
    Per-stage and whole-build log text.

    Stage logs are the concatenated node logs of one segment, in encounter
    order, each chunk newline-terminated. The ALL log comes straight from the
    build-level log, which also holds output no node owns.
    """

    def __init__(self, reader: GraphReader, max_chars: Optional[int] = None):
        self.reader = reader
        self.max_chars = max_chars

    def stage_log(self, build_id: str, arena: NodeArena, segment: Segment) -> str:
        chunks: List[str] = []
        size = 0

        for node_id in segment.node_ids:
            node = arena.get(node_id)
            if node is None or node.log_handle is None:
                continue
            try:
                text = self.reader.read_log(node.log_handle)
            except TransientReadError as e:
                get_console().print_warning(f"[{build_id}] log of node {node_id} unavailable: {e.message}")
                continue
            if not text:
                continue
            if not text.endswith("\n"):
                text += "\n"
            chunks.append(text)
            size += len(text)
            if self.max_chars is not None and size >= self.max_chars:
                break

        return self._bounded("".join(chunks))

    def build_log(self, build_id: str) -> str:
        try:
            text = self.reader.read_build_log(build_id)
        except TransientReadError as e:
            get_console().print_warning(f"[{build_id}] build log unavailable: {e.message}")
            return ""
        if text and not text.endswith("\n"):
            text += "\n"
        return self._bounded(text or "")

    def _bounded(self, text: str) -> str:
        if self.max_chars is None or len(text) <= self.max_chars:
            return text
        cut = text[: self.max_chars]
        if not cut.endswith("\n"):
            cut += "\n"
        return cut + TRUNCATION_MARKER
