"""Tests for the selection state machine and cluster expansion."""

from __future__ import annotations

from conftest import PlanarViewport, StaticPinSource, make_pin
from skywatch.config import AppConfig
from skywatch.core.mapview import MapView
from skywatch.core.models import LatLngBounds
from skywatch.core.selection import SelectionKind
from skywatch.render.memory_sink import InMemoryRenderSink


def _group(prefix: str, x: float, size: int = 5):
    return [make_pin(f"{prefix}{i}", x + i * 10, 0) for i in range(size)]


def _load(view):
    """Five clustered pins plus two far-apart singles."""
    pins = _group("a", 0) + [make_pin("x", 1000, 0), make_pin("y", 0, 1000)]
    view.store.replace(pins)
    return pins


def _opacity(view, marker_id):
    return view.sink.get(marker_id).opacity


def test_initial_state_is_idle(planar_view):
    state = planar_view.selection.state
    assert state.kind is SelectionKind.IDLE
    assert not planar_view.selection.has_selected_pin()
    assert not planar_view.selection.has_selected_cluster()


def test_select_pin_then_cluster_is_exclusive(planar_view):
    _load(planar_view)
    sel = planar_view.selection

    sel.select_pin("x")
    assert sel.state.kind is SelectionKind.PIN
    assert sel.has_selected_pin()

    sel.select_cluster("cluster-a0")
    assert sel.state.kind is SelectionKind.CLUSTER
    assert not sel.has_selected_pin()

    sel.select_pin("y")
    assert sel.state.kind is SelectionKind.PIN
    assert not sel.has_selected_cluster()


def test_pin_within_cluster_keeps_context(planar_view):
    _load(planar_view)
    sel = planar_view.selection

    sel.select_cluster("cluster-a0")
    state = sel.select_pin("a2", keep_cluster=True)

    assert state.kind is SelectionKind.PIN_IN_CLUSTER
    assert state.pin.id == "a2"
    assert state.cluster.id == "cluster-a0"


def test_keep_cluster_without_cluster_is_plain_pin(planar_view):
    _load(planar_view)
    state = planar_view.selection.select_pin("x", keep_cluster=True)
    assert state.kind is SelectionKind.PIN
    assert state.cluster is None


def test_unknown_ids_clear_selection(planar_view):
    _load(planar_view)
    sel = planar_view.selection

    sel.select_pin("x")
    assert sel.select_pin("missing").is_idle

    sel.select_cluster("cluster-a0")
    assert sel.select_cluster("cluster-missing").is_idle


def test_removing_selected_pin_falls_back_to_cluster(planar_view):
    _load(planar_view)
    sel = planar_view.selection
    sel.select_cluster("cluster-a0")
    sel.select_pin("a1", keep_cluster=True)

    assert planar_view.remove_pin("a1")

    assert sel.state.kind is SelectionKind.CLUSTER
    assert sel.state.pin is None


def test_removing_selected_pin_clears(planar_view):
    _load(planar_view)
    planar_view.selection.select_pin("x")
    planar_view.remove_pin("x")
    assert planar_view.selection.state.is_idle


def test_updated_pin_is_reconciled(planar_view):
    _load(planar_view)
    planar_view.selection.select_pin("x")

    planar_view.add_pin(make_pin("x", 1200, 0, title="moved"))

    assert planar_view.selection.selected_pin.title == "moved"


def test_expand_cluster_renders_members(planar_view):
    pins = _load(planar_view)
    members = pins[:5]
    assert planar_view.sink.get("cluster-a0") is not None

    assert planar_view.expand_cluster("cluster-a0")

    ids = {m.id for m in planar_view.sink.markers}
    assert "cluster-a0" not in ids
    assert {p.id for p in members} <= ids
    assert ("remove", "cluster-a0") in planar_view.sink.directives

    bounds, padding, max_zoom = planar_view.viewport.fits[0]
    assert bounds == LatLngBounds.from_points(members)
    assert padding == 50.0
    assert max_zoom == 16


def test_expanded_cluster_stays_expanded_after_recluster(planar_view):
    _load(planar_view)
    planar_view.expand_cluster("cluster-a0")

    result = planar_view.engine.force_recluster()

    assert result.clusters == ()
    assert len(result.singles) == 7


def test_double_expand_is_noop(planar_view):
    _load(planar_view)
    assert planar_view.expand_cluster("cluster-a0")
    assert not planar_view.expand_cluster("cluster-a0")
    assert len(planar_view.viewport.fits) == 1
    assert planar_view.stats.expansions == 1


def test_expand_unknown_cluster_is_noop(planar_view):
    _load(planar_view)
    assert not planar_view.expand_cluster("cluster-nope")
    assert planar_view.viewport.fits == []


def test_selected_pin_fades_others(planar_view):
    _load(planar_view)
    planar_view.selection.select_pin("x")

    assert _opacity(planar_view, "x") == 1.0
    assert planar_view.sink.get("x").icon.selected
    assert _opacity(planar_view, "y") == 0.4
    assert _opacity(planar_view, "cluster-a0") == 0.4


def test_selected_cluster_stays_opaque(planar_view):
    _load(planar_view)
    planar_view.selection.select_cluster("cluster-a0")

    assert _opacity(planar_view, "cluster-a0") == 1.0
    assert _opacity(planar_view, "x") == 0.4


def test_hover_restores_opacity(planar_view):
    _load(planar_view)
    planar_view.selection.select_pin("x")

    planar_view.renderer.hover("y")
    assert _opacity(planar_view, "y") == 1.0

    planar_view.renderer.hover(None)
    assert _opacity(planar_view, "y") == 0.4


def test_clear_selection_restores_everything(planar_view):
    _load(planar_view)
    planar_view.selection.select_pin("x")

    planar_view.selection.clear_selection()

    assert all(m.opacity == 1.0 for m in planar_view.sink.markers)
    assert not planar_view.sink.get("x").icon.selected


def test_selection_survives_redraw(planar_view):
    _load(planar_view)
    planar_view.selection.select_pin("x")

    planar_view.add_pin(make_pin("z", 3000, 3000))

    assert planar_view.sink.get("x").icon.selected
    assert _opacity(planar_view, "z") == 0.4


def test_click_cluster_selects_and_expands(planar_view):
    _load(planar_view)

    state = planar_view.click("cluster-a0")

    assert state.kind is SelectionKind.CLUSTER
    assert planar_view.engine.is_expanded("cluster-a0")
    assert planar_view.sink.get("cluster-a0") is None


def test_click_member_after_expand_flies_to_pin(planar_view):
    _load(planar_view)
    planar_view.click("cluster-a0")

    state = planar_view.click("a3")

    assert state.kind is SelectionKind.PIN_IN_CLUSTER
    assert state.pin.id == "a3"
    lat, lng, zoom = planar_view.viewport.flights[-1]
    assert (lat, lng) == (0.0, 0.03)
    assert zoom == 16


def test_click_unknown_marker(planar_view):
    _load(planar_view)
    assert planar_view.click("nothing-here") is None
    assert planar_view.selection.state.is_idle


def test_selection_listener_is_notified(planar_view):
    _load(planar_view)
    seen = []
    planar_view.selection.on_change(seen.append)

    planar_view.selection.select_pin("x")
    planar_view.selection.clear_selection()

    assert [s.kind for s in seen] == [SelectionKind.PIN, SelectionKind.IDLE]
    assert planar_view.stats.selections == 1


def _view_with_fit_zoom(fit_zoom):
    config = AppConfig()
    config.logging.level = "warning"
    return MapView(
        source=StaticPinSource(),
        viewport=PlanarViewport(zoom=10, fit_zoom=fit_zoom),
        sink=InMemoryRenderSink(),
        config=config,
    )


def test_expansion_survives_fit_that_zooms_out():
    view = _view_with_fit_zoom(9)
    view.store.replace(_group("a", 0))
    assert [c.id for c in view.engine.result.clusters] == ["cluster-a0"]

    assert view.expand_cluster("cluster-a0")

    assert view.viewport.get_zoom() == 9
    assert view.engine.expanded_clusters == {"cluster-a0"}
    assert view.engine.result.clusters == ()
    assert {m.id for m in view.sink.markers} == {f"a{i}" for i in range(5)}


def test_later_zoom_out_still_resets_expansions():
    view = _view_with_fit_zoom(12)
    view.store.replace(_group("a", 0))
    view.expand_cluster("cluster-a0")

    view.set_zoom(9)

    assert view.engine.expanded_clusters == frozenset()
    assert [c.id for c in view.engine.result.clusters] == ["cluster-a0"]


def test_non_string_ids_fail_soft(planar_view):
    _load(planar_view)
    planar_view.selection.select_pin("x")

    assert planar_view.selection.select_pin(123).is_idle
    assert planar_view.selection.select_cluster(5).is_idle
    assert not planar_view.expand_cluster(7)


def test_reconcile_notifies_observers_without_counting(planar_view):
    _load(planar_view)
    planar_view.selection.select_pin("x")
    seen = []
    planar_view.selection.on_change(seen.append)

    planar_view.add_pin(make_pin("x", 1100, 0, title="moved"))

    assert [s.pin.title for s in seen] == ["moved"]
    assert seen[0].kind is SelectionKind.PIN
    assert planar_view.stats.selections == 1
