from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

UNKNOWN_SELLER = "UnknownSeller"
UNKNOWN_BUYER = "UnknownBuyer"


@dataclass(frozen=True)
class RawEvent:
    """An event as received from the Flow REST API (base64 payload) or a pre-decoded feed (data)."""
    type: str
    transaction_id: str
    payload: Optional[str] = None
    data: Optional[Mapping[str, Any]] = None
    transaction_index: Optional[int] = None
    event_index: Optional[int] = None
    block_height: Optional[int] = None

    @classmethod
    def from_rest(cls, ev: Dict[str, Any], block_height: Optional[int] = None) -> "RawEvent":
        def _int(v):
            try: return int(v)
            except (TypeError, ValueError): return None
        return cls(
            type=ev.get("type") or "",
            transaction_id=ev.get("transaction_id") or ev.get("transactionId") or "",
            payload=ev.get("payload"),
            data=ev.get("data"),
            transaction_index=_int(ev.get("transaction_index")),
            event_index=_int(ev.get("event_index")),
            block_height=block_height,
        )


@dataclass(frozen=True)
class DecodedEvent:
    raw: RawEvent
    fields: Mapping[str, Any] = field(default_factory=dict)

    @property
    def type(self) -> str:
        return self.raw.type

    @property
    def transaction_id(self) -> str:
        return self.raw.transaction_id

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)


@dataclass(frozen=True)
class SaleRecord:
    token_type: str
    token_id: str
    transaction_id: str
    raw_amount: Decimal
    vault_type: str
    usd_price: float
    marketplace: str
    seller: Optional[str] = None
    buyer: Optional[str] = None

    @property
    def seller_display(self) -> str:
        return self.seller or UNKNOWN_SELLER

    @property
    def buyer_display(self) -> str:
        return self.buyer or UNKNOWN_BUYER
