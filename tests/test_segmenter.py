from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import List

from conftest import BUILD_ID, DEPLOY_NODES, DescribingStore

from stageview.graph import NodeArena, StageDescriptor
from stageview.memory import InMemoryStore
from stageview.model import ExecutionNode, NodeKind, StageStatus
from stageview.segmenter import (
    DelegatedSegmenter,
    ManualWalkSegmenter,
    SegmentCache,
    membership,
    select_segmenter,
)


def _arena(nodes: List[ExecutionNode]) -> NodeArena:
    return NodeArena.build(nodes)


def _boundary(node_id: str, label, **kw) -> ExecutionNode:
    return ExecutionNode(id=node_id, kind=NodeKind.BOUNDARY, label=label, **kw)


def _step(node_id: str, **kw) -> ExecutionNode:
    return ExecutionNode(id=node_id, kind=NodeKind.STEP, **kw)


def test_manual_walk_one_segment_per_labelled_boundary() -> None:
    arena = _arena([n for n, _ in DEPLOY_NODES])
    segments = ManualWalkSegmenter().segment(BUILD_ID, arena)

    assert [s.name for s in segments] == ["Build", "Test", "Approve"]
    assert [s.boundary_id for s in segments] == ["b1", "b2", "b3"]
    assert segments[0].node_ids == ["b1", "s1"]
    assert segments[2].node_ids == ["b3", "s3"]


def test_nodes_before_first_boundary_belong_to_no_segment() -> None:
    arena = _arena([n for n, _ in DEPLOY_NODES])
    owner = membership(ManualWalkSegmenter().segment(BUILD_ID, arena))
    assert "n0" not in owner
    assert owner["s2"] == 1


def test_unlabelled_boundary_does_not_open_a_stage() -> None:
    arena = _arena([
        _boundary("b1", "Build"),
        _step("s1"),
        _boundary("b2", "   "),
        _boundary("b3", None),
        _step("s2"),
    ])
    segments = ManualWalkSegmenter().segment(BUILD_ID, arena)
    assert len(segments) == 1
    assert segments[0].node_ids == ["b1", "s1", "b2", "b3", "s2"]


def test_duplicate_labels_stay_distinct_stages() -> None:
    arena = _arena([_boundary("b1", "Deploy"), _step("s1"), _boundary("b2", "Deploy"), _step("s2")])
    segments = ManualWalkSegmenter().segment(BUILD_ID, arena)
    assert [s.name for s in segments] == ["Deploy", "Deploy"]
    assert [s.boundary_id for s in segments] == ["b1", "b2"]


def test_no_boundaries_means_no_segments() -> None:
    arena = _arena([_step("s1"), _step("s2")])
    assert ManualWalkSegmenter().segment(BUILD_ID, arena) == []


def test_labels_are_trimmed() -> None:
    arena = _arena([_boundary("b1", "  Build  ")])
    assert ManualWalkSegmenter().segment(BUILD_ID, arena)[0].name == "Build"


def test_duplicate_node_ids_keep_first_occurrence() -> None:
    arena = _arena([_boundary("b1", "Build"), _step("s1"), _step("s1", active=True)])
    assert len(arena) == 2
    assert arena.get("s1").active is False


def test_select_segmenter_prefers_stage_source() -> None:
    assert isinstance(select_segmenter(InMemoryStore()), ManualWalkSegmenter)
    assert isinstance(select_segmenter(DescribingStore()), DelegatedSegmenter)


def test_delegated_orders_by_boundary_position_and_drops_bad_entries() -> None:
    source = DescribingStore()
    source.descriptors = [
        StageDescriptor("b2", "Test", ("s2",), StageStatus.FAILED),
        StageDescriptor("b1", "Build", ("s1", "ghost")),
        StageDescriptor("b1", "Build again"),
        StageDescriptor("missing", "Nowhere"),
    ]
    arena = _arena([_boundary("b1", "Build"), _step("s1"), _boundary("b2", "Test"), _step("s2")])

    segments = DelegatedSegmenter(source).segment(BUILD_ID, arena)

    assert [s.boundary_id for s in segments] == ["b1", "b2"]
    assert segments[0].node_ids == ["b1", "s1"]
    assert segments[0].status_hint is None
    assert segments[1].status_hint is StageStatus.FAILED


def test_delegated_nodes_follow_snapshot_order() -> None:
    source = DescribingStore()
    source.descriptors = [StageDescriptor("b1", "Build", ("s2", "s1", "s2"))]
    arena = _arena([_boundary("b1", "Build"), _step("s1"), _step("s2")])

    segments = DelegatedSegmenter(source).segment(BUILD_ID, arena)
    assert segments[0].node_ids == ["b1", "s1", "s2"]


def test_delegated_nodes_stay_inside_their_stage() -> None:
    source = DescribingStore()
    source.descriptors = [
        StageDescriptor("b1", "Build", ("pre", "s1", "s2", "s3")),
        StageDescriptor("b2", "Test", ("s3",)),
    ]
    arena = _arena([
        _step("pre"),
        _boundary("b1", "Build"),
        _step("s1"),
        _step("s2"),
        _boundary("b2", "Test"),
        _step("s3"),
    ])

    segments = DelegatedSegmenter(source).segment(BUILD_ID, arena)

    assert segments[0].node_ids == ["b1", "s1", "s2"]
    assert segments[1].node_ids == ["b2", "s3"]


def test_cache_hit_until_graph_grows() -> None:
    cache = SegmentCache()
    arena = _arena([_boundary("b1", "Build"), _step("s1")])
    segments = ManualWalkSegmenter().segment(BUILD_ID, arena)

    cache.put(BUILD_ID, arena.version, segments)
    hit = cache.get(BUILD_ID, arena.version)
    assert hit is not None
    assert hit[0].node_ids == ["b1", "s1"]

    # callers may mutate what they get back
    hit[0].node_ids.append("x")
    assert cache.get(BUILD_ID, arena.version)[0].node_ids == ["b1", "s1"]

    assert cache.get(BUILD_ID, arena.version + 1) is None
    cache.put(BUILD_ID, arena.version + 1, segments)
    assert len(cache) == 1
    assert cache.get(BUILD_ID, arena.version) is None

    cache.invalidate(BUILD_ID)
    assert len(cache) == 0


def test_cache_evicts_least_recently_used_build() -> None:
    cache = SegmentCache(max_builds=2)
    cache.put("a", 1, [])
    cache.put("b", 1, [])
    assert cache.get("a", 1) == []
    cache.put("c", 1, [])

    assert len(cache) == 2
    assert cache.get("b", 1) is None
    assert cache.get("a", 1) == []
    assert cache.get("c", 1) == []


def test_cache_is_safe_under_concurrent_builds() -> None:
    cache = SegmentCache(max_builds=16)
    arena = _arena([_boundary("b1", "Build"), _step("s1")])
    segments = ManualWalkSegmenter().segment(BUILD_ID, arena)

    def churn(worker: int) -> int:
        hits = 0
        for i in range(500):
            build_id = f"build-{(worker * 7 + i) % 50}"
            cache.put(build_id, i, segments)
            if cache.get(build_id, i) is not None:
                hits += 1
            if i % 10 == 0:
                cache.invalidate(build_id)
        return hits

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(churn, range(8)))

    assert len(results) == 8
    assert len(cache) <= 16
