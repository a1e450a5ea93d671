# -------------------------
# Price helpers
# -------------------------
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, FrozenSet, Iterable, Optional, Union

import requests

from .cadence import encode_argument
from .flow import HTTP_TIMEOUT, FetchError, FlowClient, make_session, query_script
from .logs import log
from .retry import RetryPolicy

FLOW_VAULT = "A.1654653399040a61.FlowToken.Vault"
DUC_VAULT = "A.ead892083b3e2c6c.DapperUtilityCoin.Vault"
USDC_VAULT = "A.b19436aae4d94622.FiatToken.Vault"
USD_VAULTS: FrozenSet[str] = frozenset({DUC_VAULT, USDC_VAULT})

COINGECKO_URL = "https://api.coingecko.com/api/v3/simple/price"
COINGECKO_IDS: Dict[str, str] = {FLOW_VAULT: "flow"}
DEFAULT_ORACLE_ADDRESS = "0xe385412159992e11"

Number = Union[int, float, Decimal]


def _positive(p) -> Optional[float]:
    try:
        v = float(p)
    except (TypeError, ValueError):
        return None
    return v if v > 0 else None


class CoinGeckoOracle:
    """USD per unit of a vault's currency from CoinGecko simple/price."""

    def __init__(self, session: Optional[requests.Session] = None, ids: Optional[Dict[str, str]] = None):
        self.s = session or make_session()
        self.ids = dict(ids or COINGECKO_IDS)

    def __call__(self, vault_type: str) -> Optional[float]:
        cg_id = self.ids.get(vault_type)
        if not cg_id:
            log(f"no CoinGecko id for vault {vault_type}", "WARN")
            return None
        try:
            r = self.s.get(COINGECKO_URL, params={"ids": cg_id, "vs_currencies": "usd"}, timeout=HTTP_TIMEOUT)
            if r.status_code != 200:
                log(f"USD price fetch failed [{r.status_code}]", "WARN")
                return None
            p = (r.json() or {}).get(cg_id, {}).get("usd")
            return _positive(p)
        except (requests.RequestException, ValueError) as e:
            log(f"USD price fetch failed: {e}", "WARN")
            return None


class OnChainFlowOracle:
    """FLOW/USD from the on-chain price oracle via a Cadence script (flowprice.cdc)."""

    def __init__(self, client: FlowClient, cadence: str, oracle_address: str = DEFAULT_ORACLE_ADDRESS,
                 policy: Optional[RetryPolicy] = None):
        self.client = client
        self.cadence = cadence
        self.oracle_address = oracle_address
        self.policy = policy or RetryPolicy(max_attempts=3, backoff=(1.0,))

    def __call__(self, vault_type: str) -> Optional[float]:
        if vault_type != FLOW_VAULT:
            return None
        try:
            res = query_script(self.client, self.policy, self.cadence,
                               [encode_argument("Address", self.oracle_address)], what="flow price oracle")
        except FetchError as e:
            log(f"flow price oracle query failed: {e}", "WARN")
            return None
        # script returns [UFix64] or a bare UFix64
        if isinstance(res, list):
            res = res[0] if res else None
        return _positive(res)


@dataclass
class PriceCache:
    """Single (vault, rate, fetched_at) slot with a fixed TTL."""
    ttl: float = 60.0
    vault_type: Optional[str] = None
    rate: Optional[float] = None
    fetched_at: float = 0.0

    def get(self, vault_type: str, now: float) -> Optional[float]:
        if self.rate is None or self.vault_type != vault_type:
            return None
        if now - self.fetched_at >= self.ttl:
            return None
        return self.rate

    def put(self, vault_type: str, rate: float, now: float) -> None:
        self.vault_type, self.rate, self.fetched_at = vault_type, rate, now


class PriceConverter:
    def __init__(self, oracle: Callable[[str], Optional[float]], usd_vaults: Iterable[str] = USD_VAULTS,
                 ttl: float = 60.0, clock: Callable[[], float] = time.time):
        self.oracle = oracle
        self.usd_vaults = frozenset(usd_vaults)
        self.cache = PriceCache(ttl=ttl)
        self.clock = clock

    def rate(self, vault_type: str) -> Optional[float]:
        """USD per unit of vault_type; None when the oracle cannot price it."""
        if vault_type in self.usd_vaults:
            return 1.0
        now = self.clock()
        hit = self.cache.get(vault_type, now)
        if hit is not None:
            return hit
        try:
            rate = _positive(self.oracle(vault_type))
        except Exception as e:
            log(f"price oracle error for {vault_type}: {e}", "WARN")
            return None
        if rate is None:
            return None
        self.cache.put(vault_type, rate, now)
        return rate

    def usd_value(self, vault_type: str, raw_amount: Number) -> Optional[Decimal]:
        """Exact USD amount (rate taken at its printed precision); used for threshold checks."""
        amount = Decimal(str(raw_amount))
        if vault_type in self.usd_vaults:
            return amount
        r = self.rate(vault_type)
        if r is None:
            return None
        return amount * Decimal(repr(r))

    def usd_price(self, vault_type: str, raw_amount: Number) -> Optional[float]:
        v = self.usd_value(vault_type, raw_amount)
        return None if v is None else float(v)
