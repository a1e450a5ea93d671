import pytest

from pinnacle_sales_bot.app import create_app, format_uptime
from pinnacle_sales_bot.config import PINNACLE_NFT_TYPE
from pinnacle_sales_bot.processor import ProcessorState


@pytest.fixture
def state() -> ProcessorState:
    s = ProcessorState()
    s.inc("events", 4)
    s.inc("posted")
    s.mark_posted("abc")
    return s


def test_health_and_ready(state) -> None:
    running = {"ok": True}
    client = create_app(state, 50.0, PINNACLE_NFT_TYPE, is_running=lambda: running["ok"]).test_client()
    assert client.get("/health").status_code == 200
    assert client.get("/ready").status_code == 200
    running["ok"] = False
    r = client.get("/ready")
    assert r.status_code == 503
    assert r.data == b"stopped"


def test_metrics_json(state) -> None:
    client = create_app(state, 50.0, PINNACLE_NFT_TYPE).test_client()
    body = client.get("/metrics").get_json()
    assert body["ok"] is True
    assert body["threshold_usd"] == 50.0
    assert body["tracked_type"] == PINNACLE_NFT_TYPE
    assert body["posted_tx_ids"] == 1
    assert body["metrics"]["events"] == 4
    assert body["metrics"]["posted"] == 1
    assert body["window"]["events"] == 4


def test_metrics_prom(state) -> None:
    client = create_app(state, 50.0, PINNACLE_NFT_TYPE).test_client()
    text = client.get("/metrics/prom").get_data(as_text=True)
    assert "bot_events_total 4\n" in text
    assert "bot_posted_tx_ids 1\n" in text
    assert text.startswith("bot_uptime_seconds ")


def test_dashboard(state) -> None:
    client = create_app(state, 50.0, PINNACLE_NFT_TYPE).test_client()
    html = client.get("/").get_data(as_text=True)
    assert "Operational" in html
    assert "Events" in html


@pytest.mark.parametrize("secs,expected", [(59, "0m 59s"), (3720, "1h 2m"), (90061, "1d 1h 1m")])
def test_format_uptime(secs, expected) -> None:
    assert format_uptime(secs) == expected
