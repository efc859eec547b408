"""Tests for camera state and scene capture/restore."""
import pytest

from geo import GeoPoint
from scenes import INITIAL_CENTER, INITIAL_ZOOM, Scene, SceneBook, ViewState
from timeline import TimelineController


@pytest.fixture
def view():
    return ViewState()


class TestViewState:

    def test_initial_camera(self, view):
        assert view.center == INITIAL_CENTER
        assert view.zoom == INITIAL_ZOOM
        assert view.fly_trigger == 0

    def test_user_move_does_not_fly(self, view):
        assert view.move(GeoPoint(1, 2))
        assert view.center == GeoPoint(1, 2)
        assert view.fly_trigger == 0

    def test_fly_to_bumps_trigger(self, view):
        view.fly_to(GeoPoint(1, 2), 12)
        view.fly_to(GeoPoint(1, 2))
        assert view.fly_trigger == 2
        assert view.zoom == 12

    def test_non_finite_rejected(self, view):
        assert not view.fly_to(GeoPoint(float("nan"), 2), 10)
        assert not view.move(GeoPoint(1, float("inf")))
        assert view.center == INITIAL_CENTER
        assert view.fly_trigger == 0


class TestSceneBook:
    """Tests for capture and restore."""

    def test_capture(self, view):
        book = SceneBook()
        view.fly_to(GeoPoint(10, 20), 14)
        scene = book.capture(view, 42.7, ["a", "b"])
        assert scene.title == "Scene 1"
        assert scene.description == "Tactical record at T-42"
        assert scene.center == GeoPoint(10, 20)
        assert scene.zoom == 14
        assert scene.timestamp == 42.7
        assert scene.active_layer_ids == ["a", "b"]
        assert book.capture(view, 0, []).title == "Scene 2"

    def test_capture_is_a_snapshot(self, view):
        book = SceneBook()
        scene = book.capture(view, 0, [])
        view.move(GeoPoint(5, 5))
        assert scene.center == INITIAL_CENTER

    def test_restore(self, view):
        book = SceneBook()
        timeline = TimelineController()
        view.fly_to(GeoPoint(10, 20), 14)
        scene = book.capture(view, 42.7, [])
        view.fly_to(GeoPoint(0, 0), 3)
        timeline.set_cursor(90)
        trigger = view.fly_trigger

        assert book.restore(scene, view, timeline.set_cursor)
        assert view.center == GeoPoint(10, 20)
        assert view.zoom == 14
        assert timeline.cursor == 42.7
        assert view.fly_trigger == trigger + 1

    def test_restore_invalid_center_is_noop(self, view):
        book = SceneBook()
        timeline = TimelineController(cursor=30)
        scene = Scene(id="s", title="Bad", description="", center=GeoPoint(float("nan"), 0),
                      zoom=10, timestamp=80)
        assert not book.restore(scene, view, timeline.set_cursor)
        assert view.center == INITIAL_CENTER
        assert timeline.cursor == 30

    def test_remove(self, view):
        book = SceneBook()
        scene = book.capture(view, 0, [])
        assert book.remove(scene.id)
        assert not book.remove(scene.id)
        assert len(book) == 0

    def test_scene_from_dict_defaults(self):
        scene = Scene.from_dict({"id": "s", "title": "T", "center": {"lat": 1, "lng": 2},
                                 "zoom": 5, "timestamp": 10})
        assert scene.active_layer_ids == []
        assert scene.description == ""
