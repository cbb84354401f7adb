"""Tests for the SportsGameOdds client: request shape, pagination and failures."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from backend.services import odds_client
from backend.services.odds_client import OddsFeedError, SportsGameOddsClient


def _response(payload):
    resp = MagicMock()
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    return resp


def test_requires_api_key():
    with patch.object(odds_client, "API_KEY", None):
        with pytest.raises(ValueError):
            SportsGameOddsClient()


@patch("backend.services.odds_client.requests.get")
def test_single_page(mock_get):
    mock_get.return_value = _response({"success": True, "data": [{"eventID": "A"}]})
    client = SportsGameOddsClient(api_key="k", base_url="https://api.example.com/v2/")

    events = client.get_events(league_id="NFL")

    assert events == [{"eventID": "A"}]
    args, kwargs = mock_get.call_args
    assert args[0] == "https://api.example.com/v2/events/"
    assert kwargs["headers"] == {"X-Api-Key": "k"}
    assert kwargs["params"]["leagueID"] == "NFL"
    assert "cursor" not in kwargs["params"]
    assert kwargs["timeout"] == 15


@patch("backend.services.odds_client.requests.get")
def test_follows_cursor(mock_get):
    mock_get.side_effect = [
        _response({"success": True, "data": [{"eventID": "A"}], "nextCursor": "page2"}),
        _response({"success": True, "data": {"events": [{"eventID": "B"}]}}),
    ]
    client = SportsGameOddsClient(api_key="k")

    events = client.get_events()

    assert [e["eventID"] for e in events] == ["A", "B"]
    assert mock_get.call_count == 2
    assert mock_get.call_args.kwargs["params"]["cursor"] == "page2"


@patch("backend.services.odds_client.requests.get")
def test_stops_at_max_pages(mock_get):
    mock_get.return_value = _response({"success": True, "data": [{"eventID": "A"}], "nextCursor": "more"})
    client = SportsGameOddsClient(api_key="k")

    events = client.get_events(max_pages=3)

    assert mock_get.call_count == 3
    assert len(events) == 3


@patch("backend.services.odds_client.requests.get")
def test_success_false_raises(mock_get):
    mock_get.return_value = _response({"success": False, "error": "Invalid API key"})
    client = SportsGameOddsClient(api_key="bad")

    with pytest.raises(OddsFeedError, match="Invalid API key"):
        client.get_events()


@patch("backend.services.odds_client.requests.get")
def test_network_error_raises(mock_get):
    mock_get.side_effect = requests.exceptions.ConnectionError("connection refused")
    client = SportsGameOddsClient(api_key="k")

    with pytest.raises(OddsFeedError):
        client.get_events()


@patch("backend.services.odds_client.requests.get")
def test_invalid_json_raises(mock_get):
    resp = MagicMock()
    resp.raise_for_status.return_value = None
    resp.json.side_effect = ValueError("Expecting value")
    mock_get.return_value = resp
    client = SportsGameOddsClient(api_key="k")

    with pytest.raises(OddsFeedError, match="Invalid JSON"):
        client.get_events()


@patch("backend.services.odds_client.requests.get")
def test_http_error_raises(mock_get):
    resp = MagicMock()
    resp.raise_for_status.side_effect = requests.exceptions.HTTPError("503 Server Error")
    mock_get.return_value = resp
    client = SportsGameOddsClient(api_key="k")

    with pytest.raises(OddsFeedError):
        client.get_events()
