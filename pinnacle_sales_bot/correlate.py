# Buyer/seller correlation from the transfer events of one transaction

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Union

from .addresses import unwrap_address
from .cadence import DecodeError, decode_event
from .logs import log
from .models import UNKNOWN_BUYER, UNKNOWN_SELLER, DecodedEvent, RawEvent

NFT_STANDARD_ADDRESS = "1d7e57aa55817448"

Event = Union[RawEvent, DecodedEvent]


@dataclass(frozen=True)
class TransferFamily:
    """Which event types count as withdraw (seller side) and deposit (buyer side)."""
    name: str
    is_withdraw: Callable[[str], bool]
    is_deposit: Callable[[str], bool]


def standard_family(address: str = NFT_STANDARD_ADDRESS) -> TransferFamily:
    withdrawn = f"A.{address}.NonFungibleToken.Withdrawn"
    deposited = f"A.{address}.NonFungibleToken.Deposited"
    return TransferFamily("NonFungibleToken", lambda t: t == withdrawn, lambda t: t == deposited)


NON_FUNGIBLE_TOKEN = standard_family()
# any Pack contract; matched by suffix
PACK_NFT = TransferFamily(
    "PackNFT",
    lambda t: t.endswith(".PackNFT.Withdraw"),
    lambda t: t.endswith(".PackNFT.Deposit"),
)


@dataclass(frozen=True)
class Transfers:
    seller: Optional[str] = None
    buyer: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return bool(self.seller or self.buyer)

    def as_legacy(self) -> Dict[str, str]:
        return {"seller": self.seller or UNKNOWN_SELLER, "buyer": self.buyer or UNKNOWN_BUYER}


def resolve_transfers(events: Iterable[Event], token_id, family: TransferFamily = NON_FUNGIBLE_TOKEN) -> Transfers:
    target = str(token_id)
    seller: Optional[str] = None
    buyer: Optional[str] = None
    for ev in events:
        withdraw, deposit = family.is_withdraw(ev.type), family.is_deposit(ev.type)
        if not (withdraw or deposit):
            continue
        try:
            d = decode_event(ev)
        except DecodeError as e:
            log(f"skip undecodable {ev.type} in tx {ev.transaction_id[:10]}…: {e}", "DEBUG")
            continue
        eid = d.get("id")
        if eid is None or str(eid) != target:
            continue
        if withdraw:
            seller = unwrap_address(d.get("from")) or seller
        else:
            buyer = unwrap_address(d.get("to")) or buyer
    return Transfers(seller=seller, buyer=buyer)


def correlate(events: Iterable[Event], token_id, family: TransferFamily = NON_FUNGIBLE_TOKEN) -> Dict[str, str]:
    """{"seller": addr | "UnknownSeller", "buyer": addr | "UnknownBuyer"}"""
    return resolve_transfers(events, token_id, family).as_legacy()


def correlate_pack(events: Iterable[Event], token_id) -> Dict[str, str]:
    return correlate(events, token_id, PACK_NFT)
