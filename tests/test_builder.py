from __future__ import annotations

import pytest
from conftest import BUILD_ID, DEPLOY_APPROVAL, DescribingStore, fixed_clock, seed

from stageview.builder import StageService
from stageview.errors import BuildNotFound
from stageview.graph import StageDescriptor
from stageview.memory import InMemoryStore
from stageview.model import ALL_STAGE_ID, Approval, StageStatus
from stageview.segmenter import SegmentCache


def test_full_view_lists_all_then_stages(service: StageService) -> None:
    view = service.get_full_stage_view(BUILD_ID)

    assert view.job_full_name == "team/deploy"
    assert view.build_number == 42
    assert view.overall_status is StageStatus.IN_PROGRESS
    assert view.stage_names() == ["ALL", "Build", "Test", "Approve"]

    all_stage, build, test, approve = view.stages
    assert all_stage.id == ALL_STAGE_ID
    assert all_stage.status is StageStatus.IN_PROGRESS
    assert (all_stage.start_time_millis, all_stage.duration_millis) == (1000, 4000)
    assert all_stage.logs == "cloning repo\ncompiling\ntests passed\n"

    assert build.status is StageStatus.SUCCESS
    assert (build.start_time_millis, build.duration_millis) == (1100, 200)
    assert build.logs == "compiling\n"
    assert test.logs == "tests passed\n"

    assert approve.status is StageStatus.PAUSED_PENDING_INPUT
    assert approve.approval == DEPLOY_APPROVAL
    assert approve.duration_millis == 3500
    assert view.pending_stages == [approve]


def test_stage_view_has_only_pending_stages_without_logs(service: StageService) -> None:
    view = service.get_stage_view(BUILD_ID)
    assert view.stage_names() == ["Approve"]
    assert view.stages[0].logs == ""
    assert view.stages[0].approval.id == "abc123"


def test_stage_log_lookup(service: StageService) -> None:
    assert service.get_stage_log(BUILD_ID, "b2").logs == "tests passed\n"
    assert service.get_stage_log(BUILD_ID, ALL_STAGE_ID).name == "ALL"
    assert service.get_stage_log(BUILD_ID, "missing") is None


def test_unknown_build_raises(service: StageService) -> None:
    with pytest.raises(BuildNotFound):
        service.get_full_stage_view("nope")


def test_pipeline_progresses_after_submit(store: InMemoryStore, service: StageService) -> None:
    assert service.submit_approval(BUILD_ID, "abc123", {"CONFIRM": "true"}) is True
    store.update_node(BUILD_ID, "b3", active=False)
    store.update_node(BUILD_ID, "s3", active=False)
    store.boundary(BUILD_ID, "b4", "Deploy", parents=("s3",), active=True, start_time_millis=2000)

    view = service.get_full_stage_view(BUILD_ID)
    assert view.stage_names() == ["ALL", "Build", "Test", "Approve", "Deploy"]
    assert view.stage("b3").status is StageStatus.SUCCESS
    assert view.stage("b3").duration_millis == 500
    assert view.stage("b4").status is StageStatus.IN_PROGRESS
    assert not view.has_pending
    assert service.get_stage_view(BUILD_ID).stages == []


def test_finished_failed_build(store: InMemoryStore, service: StageService) -> None:
    assert service.abort_approval(BUILD_ID, "abc123") is True
    store.update_node(BUILD_ID, "b3", active=False)
    store.update_node(BUILD_ID, "s3", active=False, error_present=True)
    store.update_build(BUILD_ID, running=False, result="ABORTED", end_time_millis=1700)

    view = service.get_full_stage_view(BUILD_ID)
    assert view.overall_status is StageStatus.ABORTED
    assert view.stages[0].status is StageStatus.ABORTED
    assert view.stages[0].duration_millis == 700
    assert view.stage("b3").status is StageStatus.FAILED


def test_unreadable_graph_degrades_to_all_only(store: InMemoryStore, service: StageService) -> None:
    store.fail_reads.add(BUILD_ID)
    view = service.get_full_stage_view(BUILD_ID)
    assert view.stage_names() == ["ALL"]
    assert view.stages[0].logs == ""
    assert view.stages[0].approval is None


def test_approval_outside_stages_pauses_all(store: InMemoryStore) -> None:
    store.resolve("abc123", {})
    store.add_approval(BUILD_ID, Approval(id="pre", origin_node_id="n0"))
    service = StageService(store, store, store, clock=fixed_clock)

    view = service.get_stage_view(BUILD_ID)
    assert view.stage_names() == ["ALL"]
    assert view.stages[0].status is StageStatus.PAUSED_PENDING_INPUT


def test_cache_reused_for_same_snapshot(store: InMemoryStore) -> None:
    cache = SegmentCache()
    service = StageService(store, store, store, cache=cache, clock=fixed_clock)

    service.get_full_stage_view(BUILD_ID)
    assert len(cache) == 1
    store.step(BUILD_ID, "s4", log="more\n", parents=("s3",))
    view = service.get_full_stage_view(BUILD_ID)
    assert len(cache) == 1
    assert view.stage("b3").logs == "more\n"


def test_log_limit_applies_to_every_stage(store: InMemoryStore) -> None:
    service = StageService(store, store, store, max_log_chars=5, clock=fixed_clock)
    view = service.get_full_stage_view(BUILD_ID)
    assert view.stages[0].logs.startswith("cloni\n")
    assert view.stage("b1").logs.endswith("[log truncated]\n")


def test_described_stages_carry_their_reported_status() -> None:
    store = seed(DescribingStore())
    store.descriptors = [
        StageDescriptor("b1", "Build", ("s1",)),
        StageDescriptor("b2", "Test", ("s2",), StageStatus.UNSTABLE),
        StageDescriptor("b3", "Approve", ("s3",), StageStatus.SUCCESS),
    ]
    cache = SegmentCache()
    service = StageService(store, store, store, cache=cache, clock=fixed_clock)

    view = service.get_full_stage_view(BUILD_ID)

    assert service.builder.segmenter.name == "delegated"
    assert view.stage_names() == ["ALL", "Build", "Test", "Approve"]
    assert view.stage("b1").status is StageStatus.SUCCESS
    assert view.stage("b2").status is StageStatus.UNSTABLE
    assert view.stage("b2").logs == "tests passed\n"
    # a pending input outranks the reported status
    assert view.stage("b3").status is StageStatus.PAUSED_PENDING_INPUT
    assert len(cache) == 0
