from typing import Any, List, Tuple

import pytest
import requests

from pinnacle_sales_bot.flow import (
    FetchError,
    FlowClient,
    ScriptError,
    TransactionFetcher,
    TransactionNotIndexed,
)
from pinnacle_sales_bot.retry import RetriesExhausted, RetryPolicy
from tests.factories import BUYER, FakeResponse, FakeSession, b64, build_transfer, rest_event


class ScriptedClient:
    """transaction_results returns the queued results in order."""

    def __init__(self, results: List[Any]) -> None:
        self.results = list(results)
        self.calls = 0

    def transaction_results(self, tx_id: str) -> Any:
        self.calls += 1
        r = self.results.pop(0)
        if isinstance(r, Exception):
            raise r
        return r


def recording_policy(attempts: int = 3) -> Tuple[RetryPolicy, List[float]]:
    slept: List[float] = []
    return RetryPolicy(max_attempts=attempts, backoff=(2.0, 4.0, 8.0), sleep=slept.append), slept


def test_fetch_retries_until_events_are_indexed() -> None:
    tx_events = {"events": [rest_event(build_transfer("deposit", "1", BUYER))]}
    client = ScriptedClient([{"events": []}, None, tx_events])
    policy, slept = recording_policy()

    events = TransactionFetcher(client, policy).fetch("abc")

    assert len(events) == 1
    assert events[0].type.endswith("NonFungibleToken.Deposited")
    assert client.calls == 3
    assert slept == [2.0, 4.0]


def test_fetch_gives_up_after_exactly_max_attempts() -> None:
    client = ScriptedClient([{"events": []}] * 5)
    policy, slept = recording_policy()

    with pytest.raises(TransactionNotIndexed):
        TransactionFetcher(client, policy).fetch("abc")
    assert client.calls == 3
    assert slept == [2.0, 4.0]


def test_transport_failure_is_not_retried() -> None:
    client = ScriptedClient([FetchError("boom"), {"events": []}])
    policy, slept = recording_policy()

    with pytest.raises(FetchError) as exc:
        TransactionFetcher(client, policy).fetch("abc")
    assert not isinstance(exc.value, TransactionNotIndexed)
    assert client.calls == 1
    assert slept == []


def test_exponential_policy_schedule() -> None:
    p = RetryPolicy.exponential(4, 0.5)
    assert [p.delay(i) for i in (1, 2, 3, 4, 5)] == [0.5, 1.0, 2.0, 4.0, 4.0]


def test_retry_on_exceptions_then_exhaust() -> None:
    policy, slept = recording_policy(2)
    calls = []

    def op():
        calls.append(1)
        raise ScriptError("nope")

    with pytest.raises(RetriesExhausted) as exc:
        policy.run(op, retry_on=(ScriptError,))
    assert len(calls) == 2
    assert slept == [2.0]
    assert isinstance(exc.value.last_error, ScriptError)


def test_client_maps_http_errors() -> None:
    s = FakeSession([FakeResponse(500, "down"), requests.ConnectionError("refused"), FakeResponse(404, "nf")])
    client = FlowClient("https://rest.example", session=s)

    with pytest.raises(FetchError):
        client.transaction_results("a")
    with pytest.raises(FetchError):
        client.transaction_results("b")
    assert client.transaction_results("c") is None
    assert s.calls[0][1] == "https://rest.example/v1/transaction_results/a"


def test_latest_sealed_height_and_event_windows() -> None:
    ev = rest_event(build_transfer("deposit", "1", BUYER))
    s = FakeSession([
        FakeResponse(200, [{"header": {"height": "1000"}}]),
        FakeResponse(200, [{"block_height": "1", "events": [ev]}]),
        FakeResponse(200, [{"block_height": "300", "events": [ev, ev]}]),
    ])
    client = FlowClient("https://rest.example", session=s)

    assert client.latest_sealed_height() == 1000
    events = client.get_events("A.x.C.E", 1, 300)

    assert [e.block_height for e in events] == [1, 300, 300]
    assert s.calls[2][2]["params"] == {"type": "A.x.C.E", "start_height": 251, "end_height": 300}


def test_execute_script_decodes_result() -> None:
    s = FakeSession([FakeResponse(200, b64({"type": "UFix64", "value": "0.61000000"})), FakeResponse(400, "bad")])
    client = FlowClient("https://rest.example", session=s)

    assert client.execute_script("pub fun main(): UFix64 { return 0.61 }") == 0.61
    assert s.calls[0][2]["params"] == {"block_height": "sealed"}
    with pytest.raises(ScriptError):
        client.execute_script("broken")
