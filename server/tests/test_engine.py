"""Tests for ClusterEngine: triggers, debounce, deferral and expansion memory."""

from __future__ import annotations

import asyncio

import pytest

from conftest import PlanarViewport, make_pin
from skywatch.config import ClusteringConfig
from skywatch.core.clustering import ClusterEngine
from skywatch.core.stats import MapStats
from skywatch.core.store import PinStore


def _group(prefix: str, x: float, size: int = 5):
    return [make_pin(f"{prefix}{i}", x + i * 10, 0) for i in range(size)]


def _engine(zoom: int = 10, debounce: float = 0.05, ready: bool = True):
    store = PinStore()
    viewport = PlanarViewport(zoom=zoom, ready=ready)
    stats = MapStats()
    engine = ClusterEngine(store, viewport, ClusteringConfig(debounce_seconds=debounce), stats=stats)
    return engine, store, viewport, stats


def test_pin_replacement_reclusters_immediately():
    engine, store, _, stats = _engine()
    results = []
    engine.on_result(results.append)

    store.replace(_group("a", 0))

    assert stats.clustering_passes == 1
    assert len(results) == 1
    assert results[0].clusters[0].count == 5
    assert engine.result is results[0]


def test_zoom_change_without_event_loop_runs_now():
    engine, store, viewport, _ = _engine()
    store.replace(_group("a", 0))

    viewport.set_zoom(16)

    assert not engine.has_pending
    assert engine.result.zoom == 16
    assert engine.result.clusters == ()


@pytest.mark.asyncio
async def test_zoom_burst_is_debounced():
    engine, store, viewport, stats = _engine(debounce=0.05)
    store.replace(_group("a", 0))
    assert stats.clustering_passes == 1

    for zoom in (11, 12, 13):
        viewport.set_zoom(zoom)
    assert engine.has_pending
    assert stats.clustering_passes == 1

    await asyncio.sleep(0.15)

    assert not engine.has_pending
    assert stats.clustering_passes == 2
    assert engine.result.zoom == 13


@pytest.mark.asyncio
async def test_force_recluster_cancels_pending_pass():
    engine, store, viewport, stats = _engine(debounce=0.05)
    store.replace(_group("a", 0))
    viewport.set_zoom(12)
    assert engine.has_pending

    result = engine.force_recluster()

    assert result is not None
    assert result.zoom == 12
    assert not engine.has_pending
    await asyncio.sleep(0.1)
    assert stats.clustering_passes == 2


@pytest.mark.asyncio
async def test_close_cancels_pending_pass():
    engine, store, viewport, stats = _engine(debounce=0.05)
    store.replace(_group("a", 0))
    viewport.set_zoom(12)

    engine.close()
    await asyncio.sleep(0.1)

    assert stats.clustering_passes == 1


def test_pass_is_deferred_until_viewport_ready():
    engine, store, viewport, stats = _engine(ready=False)
    store.replace(_group("a", 0))

    assert engine.is_deferred
    assert engine.result.clusters == ()
    assert stats.deferred_passes == 1
    assert stats.clustering_passes == 0
    assert not engine.is_clustering_active

    viewport.ready = True
    result = engine.resume()

    assert result is not None
    assert not engine.is_deferred
    assert len(result.clusters) == 1


def test_resume_without_deferred_pass_is_noop():
    engine, store, _, stats = _engine()
    store.replace(_group("a", 0))
    assert engine.resume() is None
    assert stats.clustering_passes == 1


def test_clustering_active_follows_zoom_range():
    engine, _, viewport, _ = _engine(zoom=10)
    assert engine.is_clustering_active
    viewport.set_zoom(15)
    assert not engine.is_clustering_active
    viewport.set_zoom(8)
    assert engine.is_clustering_active


def test_expanded_cluster_is_not_reabsorbed_at_same_zoom():
    engine, store, _, _ = _engine()
    store.replace(_group("a", 0))
    cluster = engine.result.clusters[0]

    assert engine.mark_expanded(cluster)
    assert not engine.mark_expanded(cluster)
    result = engine.force_recluster()

    assert result.clusters == ()
    assert {p.id for p in result.singles} == cluster.member_ids
    assert engine.is_expanded(cluster.id)

    engine.clear_expanded_clusters()
    result = engine.force_recluster()
    assert len(result.clusters) == 1


def test_expansion_memory_survives_new_pins():
    engine, store, _, _ = _engine()
    store.replace(_group("a", 0))
    engine.mark_expanded(engine.result.clusters[0])

    store.upsert(make_pin("a-late", 15, 5))

    assert engine.result.clusters == ()
    assert len(engine.result.singles) == 6


def test_crossing_below_reset_zoom_clears_expansions():
    engine, store, viewport, _ = _engine(zoom=12)
    store.replace(_group("a", 0))
    engine.mark_expanded(engine.result.clusters[0])

    viewport.set_zoom(11)
    assert engine.expanded_clusters == {"cluster-a0"}

    viewport.set_zoom(9)
    assert engine.expanded_clusters == frozenset()
    assert len(engine.result.clusters) == 1


def test_zooming_within_reset_band_keeps_new_expansions():
    engine, store, viewport, _ = _engine(zoom=9)
    store.replace(_group("a", 0))
    engine.mark_expanded(engine.result.clusters[0])

    viewport.set_zoom(8)

    assert engine.expanded_clusters == {"cluster-a0"}
    assert engine.expanded_member_ids == {f"a{i}" for i in range(5)}
