from __future__ import annotations

from typing import List, Optional, Tuple

import pytest

from stageview.builder import StageService
from stageview.graph import StageDescriptor
from stageview.memory import InMemoryStore
from stageview.model import (
    Approval,
    BuildMetadata,
    ExecutionNode,
    NodeKind,
    ParameterType,
    RequiredParameter,
)
from stageview.ui.console import Console, set_console

BUILD_ID = "deploy-42"
NOW = 5000

DEPLOY_META = BuildMetadata(
    job_name="deploy",
    job_full_name="team/deploy",
    build_number=42,
    build_url="http://ci.example/job/deploy/42/",
    running=True,
    result=None,
    start_time_millis=1000,
)

# (node, log); n0 runs before the first stage
DEPLOY_NODES: List[Tuple[ExecutionNode, Optional[str]]] = [
    (ExecutionNode(id="n0", kind=NodeKind.STEP, start_time_millis=1000), "cloning repo"),
    (ExecutionNode(id="b1", kind=NodeKind.BOUNDARY, label="Build", parents=("n0",), start_time_millis=1100), None),
    (ExecutionNode(id="s1", kind=NodeKind.STEP, parents=("b1",), start_time_millis=1150), "compiling\n"),
    (ExecutionNode(id="b2", kind=NodeKind.BOUNDARY, label="Test", parents=("s1",), start_time_millis=1300), None),
    (ExecutionNode(id="s2", kind=NodeKind.STEP, parents=("b2",), start_time_millis=1350), "tests passed\n"),
    (ExecutionNode(id="b3", kind=NodeKind.BOUNDARY, label="Approve", parents=("s2",), active=True, start_time_millis=1500), None),
    (ExecutionNode(id="s3", kind=NodeKind.STEP, parents=("b3",), active=True, start_time_millis=1510), None),
]

CONFIRM = RequiredParameter(
    name="CONFIRM",
    declared_type=ParameterType.BOOLEAN,
    description="Really deploy?",
    default_value="false",
)

DEPLOY_APPROVAL = Approval(
    id="abc123",
    message="Ship it?",
    proceed_label="Deploy",
    parameters=(CONFIRM,),
    origin_node_id="s3",
)


def fixed_clock() -> int:
    return NOW


@pytest.fixture(autouse=True)
def quiet_console():
    set_console(Console(debug=False))
    yield
    set_console(Console(debug=False))


class DescribingStore(InMemoryStore):
    """In-memory store that also reports its own stages."""

    def __init__(self) -> None:
        super().__init__()
        self.descriptors: List[StageDescriptor] = []

    def describe_stages(self, build_id: str) -> List[StageDescriptor]:
        return list(self.descriptors)


def seed(s: InMemoryStore) -> InMemoryStore:
    s.add_build(BUILD_ID, DEPLOY_META)
    for node, log in DEPLOY_NODES:
        s.append_node(BUILD_ID, node, log=log)
    s.add_approval(BUILD_ID, DEPLOY_APPROVAL)
    return s


@pytest.fixture
def store() -> InMemoryStore:
    return seed(InMemoryStore())


@pytest.fixture
def service(store: InMemoryStore) -> StageService:
    return StageService(store, store, store, clock=fixed_clock)
