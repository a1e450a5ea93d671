# Sale event gate: decides whether a decoded ListingCompleted is a sale worth posting

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

from .cadence import type_id
from .models import DecodedEvent, SaleRecord
from .pricing import PriceConverter

STOREFRONT_V2_PREFIXES = (
    "A.4eb8a10cb9f87357.NFTStorefrontV2",
    "A.3cdbb3d569211ff3.NFTStorefrontV2",
)

REASON_WRONG_TYPE = "wrong type"
REASON_NOT_PURCHASED = "not purchased"
REASON_NO_PRICE = "no sale price"
REASON_PRICE_UNAVAILABLE = "price unavailable"
REASON_BELOW_THRESHOLD = "below threshold"


@dataclass(frozen=True)
class GateConfig:
    tracked_type: str
    threshold_usd: float
    dry_run: bool = False


@dataclass(frozen=True)
class Rejected:
    reason: str
    usd_price: Optional[float] = None
    accepted = False


@dataclass(frozen=True)
class Accepted:
    sale: SaleRecord
    accepted = True


GateResult = Union[Accepted, Rejected]


def marketplace_source(event_type: str) -> str:
    if event_type.startswith(STOREFRONT_V2_PREFIXES):
        return "NFTStorefrontV2"
    return "Unknown"


def parse_amount(v: Any) -> Optional[Decimal]:
    """Non-negative finite decimal from a UFix64 float, an int or a numeric string."""
    if v is None or isinstance(v, bool):
        return None
    try:
        d = Decimal(str(v).strip())
    except (InvalidOperation, ValueError):
        return None
    if not d.is_finite() or d < 0:
        return None
    return d


class SaleEventGate:
    def __init__(self, converter: PriceConverter):
        self.converter = converter

    def accept(self, decoded: DecodedEvent, cfg: GateConfig) -> GateResult:
        nft_type = type_id(decoded.get("nftType"))
        if nft_type != cfg.tracked_type:
            return Rejected(REASON_WRONG_TYPE)

        if decoded.get("purchased") is not True:
            return Rejected(REASON_NOT_PURCHASED)

        raw = decoded.get("salePrice")
        amount = parse_amount(raw if raw is not None else decoded.get("price"))
        if amount is None or amount <= 0:
            return Rejected(REASON_NO_PRICE)

        vault = type_id(decoded.get("salePaymentVaultType"))
        exact = self.converter.usd_value(vault, amount)
        if exact is None:
            return Rejected(REASON_PRICE_UNAVAILABLE)
        usd = float(exact)

        if not cfg.dry_run and exact < Decimal(repr(float(cfg.threshold_usd))):
            return Rejected(REASON_BELOW_THRESHOLD, usd_price=usd)

        token_id = decoded.get("nftID", decoded.get("nftId"))
        return Accepted(SaleRecord(
            token_type=nft_type,
            token_id="" if token_id is None else str(token_id),
            transaction_id=decoded.transaction_id,
            raw_amount=amount,
            vault_type=vault,
            usd_price=usd,
            marketplace=marketplace_source(decoded.type),
        ))
