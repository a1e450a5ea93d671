# -------------------------
# Pinnacle metadata (Cadence script queries)
# -------------------------
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .cadence import encode_argument
from .flow import FetchError, FlowClient, query_script
from .logs import log
from .retry import RetryPolicy

PIN_URL = "https://disneypinnacle.com/pin/{edition_id}"
RENDER_URL = "https://assets.disneypinnacle.com/render/{render_id}/front.png"

PIN_SCRIPT = "pinnacle.cdc"
EDITION_SCRIPT = "get_edition.cdc"
PRICE_SCRIPT = "flowprice.cdc"

# pinnacle.cdc, get_edition.cdc and flowprice.cdc ship inside the package
BUNDLED_CADENCE_DIR = Path(__file__).resolve().parent / "flow"


def load_script(cadence_dir: Path, name: str) -> str:
    return (Path(cadence_dir) / name).read_text(encoding="utf-8")


def missing_scripts(cadence_dir: Path, names: Sequence[str]) -> List[str]:
    return [n for n in names if not (Path(cadence_dir) / n).is_file()]


@dataclass
class PinDetails:
    edition_id: Any
    serial_number: Optional[Any] = None
    edition_name: str = "Unknown Edition"
    max_supply: str = "N/A"
    characters: str = "N/A"
    render_id: Optional[str] = None
    traits: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def pin_url(self) -> str:
        return PIN_URL.format(edition_id=self.edition_id)

    @property
    def image_url(self) -> Optional[str]:
        if not self.render_id:
            return None
        return RENDER_URL.format(render_id=self.render_id)


def _trait(traits: List[Dict[str, Any]], name: str) -> Any:
    for t in traits or []:
        if isinstance(t, dict) and t.get("name") == name:
            return t.get("value")
    return None


def characters_of(traits: List[Dict[str, Any]]) -> str:
    v = _trait(traits, "Characters")
    if isinstance(v, list):
        return ", ".join(str(x) for x in v) if v else "N/A"
    return str(v) if v else "N/A"


class PinnacleMetadata:
    """Opaque lookups: pin record by (owner, id), edition record by edition id."""

    def __init__(self, client: FlowClient, cadence_dir: Path = BUNDLED_CADENCE_DIR,
                 policy: Optional[RetryPolicy] = None):
        self.client = client
        self.cadence_dir = Path(cadence_dir)
        self.policy = policy or RetryPolicy(max_attempts=3, backoff=(1.0,))
        self._scripts: Dict[str, str] = {}

    def _script(self, name: str) -> str:
        if name not in self._scripts:
            self._scripts[name] = load_script(self.cadence_dir, name)
        return self._scripts[name]

    def pin(self, owner: str, nft_id: str) -> Optional[Dict[str, Any]]:
        res = query_script(self.client, self.policy, self._script(PIN_SCRIPT),
                           [encode_argument("Address", owner), encode_argument("UInt64", nft_id)],
                           what=f"pinnacle script #{nft_id}")
        return res if isinstance(res, dict) else None

    def edition(self, edition_id) -> Optional[Dict[str, Any]]:
        res = query_script(self.client, self.policy, self._script(EDITION_SCRIPT),
                           [encode_argument("Int", edition_id)], what=f"edition script {edition_id}")
        return res if isinstance(res, dict) else None

    def details(self, owner: str, nft_id: str) -> Optional[PinDetails]:
        """None when the pin cannot be found; edition data is best-effort."""
        try:
            pin = self.pin(owner, nft_id)
        except (FetchError, OSError) as e:
            log(f"pinnacle script failed for #{nft_id} @ {owner}: {e}", "WARN")
            return None
        if not pin:
            log(f"pinnacle script returned null for #{nft_id} @ {owner}", "WARN")
            return None

        traits = pin.get("traits") or []
        d = PinDetails(
            edition_id=pin.get("editionID", "N/A"),
            serial_number=pin.get("serialNumber"),
            characters=characters_of(traits),
            traits=traits,
        )
        editions = pin.get("editions") or []
        if editions and isinstance(editions[0], dict):
            d.edition_name = editions[0].get("name") or d.edition_name
            if editions[0].get("max") is not None:
                d.max_supply = str(editions[0]["max"])
        set_name = _trait(traits, "SetName")
        if d.edition_name == "Unknown Edition" and set_name:
            d.edition_name = str(set_name)

        if d.edition_id != "N/A":
            try:
                ed = self.edition(d.edition_id)
            except (FetchError, OSError) as e:
                log(f"edition script failed for {d.edition_id}: {e}", "WARN")
                ed = None
            if ed:
                d.render_id = ed.get("renderID") or None
                if d.max_supply == "N/A" and ed.get("maxMintSize") is not None:
                    d.max_supply = str(ed["maxMintSize"])
        return d
