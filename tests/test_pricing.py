from decimal import Decimal

import pytest

from pinnacle_sales_bot.pricing import (
    DUC_VAULT,
    FLOW_VAULT,
    CoinGeckoOracle,
    OnChainFlowOracle,
    PriceConverter,
)
from pinnacle_sales_bot.retry import RetryPolicy
from tests.factories import FakeResponse, FakeSession


class Clock:
    def __init__(self, t: float = 1000.0) -> None:
        self.t = t

    def __call__(self) -> float:
        return self.t


class CountingOracle:
    def __init__(self, *rates) -> None:
        self.rates = list(rates)
        self.calls = 0

    def __call__(self, vault_type: str):
        self.calls += 1
        r = self.rates.pop(0)
        if isinstance(r, Exception):
            raise r
        return r


def test_usd_vault_passes_through_without_oracle() -> None:
    oracle = CountingOracle()
    conv = PriceConverter(oracle)
    assert conv.usd_price(DUC_VAULT, Decimal("75.00")) == 75.0
    assert oracle.calls == 0


def test_rate_is_cached_within_ttl_and_refreshed_after() -> None:
    clock = Clock()
    oracle = CountingOracle(0.5, 0.8)
    conv = PriceConverter(oracle, ttl=60, clock=clock)

    assert conv.usd_price(FLOW_VAULT, 10) == pytest.approx(5.0)
    clock.t += 59
    assert conv.usd_price(FLOW_VAULT, 20) == pytest.approx(10.0)
    assert oracle.calls == 1

    clock.t += 1
    assert conv.usd_price(FLOW_VAULT, 10) == pytest.approx(8.0)
    assert oracle.calls == 2


@pytest.mark.parametrize("bad", [None, 0, -1.5, "abc", RuntimeError("oracle down")])
def test_oracle_failure_means_no_price(bad) -> None:
    oracle = CountingOracle(bad, 0.5)
    conv = PriceConverter(oracle, clock=Clock())
    assert conv.usd_price(FLOW_VAULT, 10) is None
    # failures are not cached
    assert conv.usd_price(FLOW_VAULT, 10) == pytest.approx(5.0)
    assert oracle.calls == 2


def test_cache_slot_is_per_vault_type() -> None:
    other = "A.1234567890abcdef.OtherToken.Vault"
    oracle = CountingOracle(0.5, 2.0)
    conv = PriceConverter(oracle, clock=Clock())
    conv.usd_price(FLOW_VAULT, 1)
    assert conv.usd_price(other, 1) == pytest.approx(2.0)
    assert oracle.calls == 2


def test_coingecko_oracle() -> None:
    s = FakeSession([FakeResponse(200, {"flow": {"usd": 0.71}}), FakeResponse(503, "busy")])
    oracle = CoinGeckoOracle(session=s)
    assert oracle(FLOW_VAULT) == pytest.approx(0.71)
    assert s.calls[0][2]["params"] == {"ids": "flow", "vs_currencies": "usd"}
    assert oracle(FLOW_VAULT) is None
    assert oracle("A.0000000000000000.Unknown.Vault") is None


def test_onchain_oracle_only_prices_flow() -> None:
    class Client:
        def execute_script(self, cadence, args):
            return [0.42]

    oracle = OnChainFlowOracle(Client(), "script", policy=RetryPolicy(max_attempts=1, sleep=lambda s: None))
    assert oracle(FLOW_VAULT) == pytest.approx(0.42)
    assert oracle(DUC_VAULT) is None


def test_usd_value_is_exact() -> None:
    conv = PriceConverter(CountingOracle(0.57), clock=Clock())
    assert conv.usd_value(FLOW_VAULT, Decimal("100")) == Decimal("57.00")
    assert conv.usd_value(DUC_VAULT, Decimal("49.99")) == Decimal("49.99")
    assert conv.usd_value("A.0000000000000000.Unknown.Vault", 1) is None
