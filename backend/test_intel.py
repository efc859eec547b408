"""Tests for the intel service wrappers (Anthropic calls mocked)."""
import json
from unittest.mock import patch, MagicMock

import httpx
import pytest

import intel
from geo import GeoPoint


def mock_client(text):
    """Anthropic client whose messages.create returns a single text block."""
    client = MagicMock()
    response = MagicMock()
    response.content = [MagicMock(text=text)]
    client.messages.create.return_value = response
    return client


CENTER = GeoPoint(-22.9, -43.2)


class TestJsonHelpers:

    def test_clean_json_strips_fences(self):
        assert intel.clean_json('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert intel.clean_json("") == ""

    def test_parse_json_with_prose(self):
        assert intel.parse_json('Sure! {"lat": 1, "lng": 2} hope this helps') == {"lat": 1, "lng": 2}

    def test_parse_json_array(self):
        assert intel.parse_json('Here: [{"name": "x"}]') == [{"name": "x"}]

    def test_parse_json_failure(self):
        with pytest.raises(json.JSONDecodeError):
            intel.parse_json("no json here")


class TestMissingKey:
    """Every operation degrades without an API key."""

    @pytest.fixture(autouse=True)
    def no_client(self):
        with patch("intel.get_client", return_value=None):
            yield

    def test_report(self):
        result = intel.generate_report([], [])
        assert result["status"] == "error"
        assert result["error"] == intel.API_KEY_MISSING

    def test_scenario(self):
        result = intel.generate_scenario("3 cars", CENTER)
        assert result["error"] == intel.API_KEY_MISSING
        assert result["target_location"] == CENTER.to_dict()
        assert result["items"] == []

    def test_poi(self):
        assert intel.find_points_of_interest("pharmacy", CENTER) == []


class TestGetClient:

    def test_none_without_key(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        assert intel.get_client() is None

    def test_client_with_key(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
        with patch("intel.anthropic.Anthropic") as mock_cls:
            assert intel.get_client() is mock_cls.return_value
            mock_cls.assert_called_once_with(api_key="test-key")


class TestReport:

    def test_report_uses_visible_items(self):
        client = mock_client("SITREP: all quiet")
        items = [
            {"name": "Seen", "kind": "marker", "visible": True},
            {"name": "Hidden", "kind": "marker", "visible": False},
        ]
        with patch("intel.get_client", return_value=client):
            result = intel.generate_report(items, [{"title": "Phase 1", "description": "Go"}])
        assert result == {"status": "success", "response": "SITREP: all quiet"}
        prompt = client.messages.create.call_args.kwargs["messages"][0]["content"]
        assert "Seen" in prompt
        assert "Hidden" not in prompt
        assert "Phase 1" in prompt

    def test_report_failure(self):
        client = MagicMock()
        client.messages.create.side_effect = RuntimeError("boom")
        with patch("intel.get_client", return_value=client):
            result = intel.generate_report([], [])
        assert result["error"] == intel.GENERATION_FAILED


class TestScenario:
    """Tests for tactical scenario generation."""

    def test_fenced_reply(self):
        reply = '```json\n{"targetLocation": {"lat": -23.5, "lng": -46.6}, "items": [{"subType": "police", "lat": -23.5, "lng": -46.6}]}\n```'
        with patch("intel.get_client", return_value=mock_client(reply)):
            result = intel.generate_scenario("roadblock in Sao Paulo", CENTER)
        assert result["status"] == "success"
        assert result["target_location"] == {"lat": -23.5, "lng": -46.6}
        assert len(result["items"]) == 1

    def test_unparseable_reply(self):
        with patch("intel.get_client", return_value=mock_client("I cannot help with that")):
            result = intel.generate_scenario("x", CENTER)
        assert result["status"] == "error"
        assert result["items"] == []

    def test_items_not_a_list(self):
        with patch("intel.get_client", return_value=mock_client('{"items": "none"}')):
            result = intel.generate_scenario("x", CENTER)
        assert result["items"] == []
        assert result["target_location"] is None


class TestGeocode:
    """Tests for AI geocoding with the OpenStreetMap fallback."""

    def test_ai_geocode(self):
        with patch("intel.get_client", return_value=mock_client('{"lat": -22.95, "lng": -43.21}')):
            assert intel.geocode("Christ the Redeemer") == GeoPoint(-22.95, -43.21)

    def test_fallback_to_nominatim(self):
        response = MagicMock()
        response.json.return_value = [{"lat": "-22.9519", "lon": "-43.2105"}]
        with patch("intel.get_client", return_value=None), \
             patch("intel.httpx.get", return_value=response) as mock_get:
            point = intel.geocode("Christ the Redeemer")
        assert point == GeoPoint(-22.9519, -43.2105)
        assert mock_get.call_args.kwargs["params"]["q"] == "Christ the Redeemer"

    def test_ai_non_finite_falls_back(self):
        response = MagicMock()
        response.json.return_value = []
        with patch("intel.get_client", return_value=mock_client('{"lat": null, "lng": 1}')), \
             patch("intel.httpx.get", return_value=response):
            assert intel.geocode("nowhere") is None

    def test_nominatim_network_error(self):
        with patch("intel.httpx.get", side_effect=httpx.ConnectError("down")):
            assert intel.geocode_with_nominatim("x") is None


class TestPointsOfInterest:

    def test_poi_list(self):
        reply = '[{"name": "Pharmacy", "lat": 1, "lng": 2, "description": "24h"}]'
        with patch("intel.get_client", return_value=mock_client(reply)):
            assert intel.find_points_of_interest("pharmacy", CENTER)[0]["name"] == "Pharmacy"

    def test_poi_object_reply_ignored(self):
        with patch("intel.get_client", return_value=mock_client('{"name": "x"}')):
            assert intel.find_points_of_interest("pharmacy", CENTER) == []


class TestActivityLog:

    def test_activity_recorded(self):
        intel.log_activity("geocode", "test query")
        entry = intel.get_activity_log(1)[0]
        assert entry["action"] == "geocode"
        assert entry["details"] == "test query"
