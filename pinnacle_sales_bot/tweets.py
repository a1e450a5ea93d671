# -------------------------
# Tweet text builders
# -------------------------
from typing import Optional

from .metadata import PinDetails
from .models import SaleRecord
from .pricing import FLOW_VAULT

TWEET_LIMIT = 280


def fmt_usd(x: Optional[float]) -> str:
    if x is None: return "$N/A"
    return f"${float(x):0.2f} USD"


def display_price(sale: SaleRecord) -> str:
    if sale.vault_type == FLOW_VAULT:
        return f"{float(sale.raw_amount):0.2f} FLOW (~{fmt_usd(sale.usd_price)})"
    return fmt_usd(sale.usd_price)


def shorten_addr(addr: str) -> str:
    if not addr or not addr.startswith("0x") or len(addr) < 10:
        return addr or ""
    return addr[:6] + "…" + addr[-4:]


def tweet_fits(txt: str, limit: int = TWEET_LIMIT) -> bool:
    return len(txt) <= limit


def sale_text(sale: SaleRecord, pin: PinDetails) -> str:
    lines = [
        f"{display_price(sale)} SALE on @DisneyPinnacle",
        f"{pin.edition_name}",
    ]
    if pin.serial_number is not None:
        lines.append(f"Serial #: {pin.serial_number}")
    lines += [
        f"Max Mint: {pin.max_supply}",
        f"Character(s): {pin.characters}",
        f"Edition ID: {pin.edition_id}",
        f"Seller: {sale.seller_display}",
        f"Buyer: {sale.buyer_display}",
        pin.pin_url,
    ]
    txt = "\n".join(lines)
    if tweet_fits(txt):
        return txt
    # long character lists: shorten addresses first, then drop the characters line
    lines = [l.replace(sale.seller_display, shorten_addr(sale.seller_display))
              .replace(sale.buyer_display, shorten_addr(sale.buyer_display)) for l in lines]
    txt = "\n".join(lines)
    if tweet_fits(txt):
        return txt
    return "\n".join(l for l in lines if not l.startswith("Character(s):"))


def fallback_text(sale: SaleRecord, why: str = "Could not fetch metadata") -> str:
    return "\n".join([
        f"{display_price(sale)} SALE on @DisneyPinnacle",
        f"Unknown Pin (ID: {sale.token_id})",
        f"Seller: {sale.seller_display}",
        f"Buyer: {sale.buyer_display}",
        f"({why})",
    ])
