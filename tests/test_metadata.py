from typing import List, Tuple

from pinnacle_sales_bot.flow import FetchError, ScriptError
from pinnacle_sales_bot.metadata import EDITION_SCRIPT, PIN_SCRIPT, PinnacleMetadata, characters_of
from pinnacle_sales_bot.retry import RetryPolicy
from tests.factories import BUYER

NO_WAIT = RetryPolicy(max_attempts=2, backoff=(0.0,), sleep=lambda s: None)


class ScriptClient:
    """Answers by script source; the cadence dir holds scripts whose body is their own file name."""

    def __init__(self, answers) -> None:
        self.answers = answers
        self.calls: List[Tuple[str, List[str]]] = []

    def execute_script(self, cadence, arguments=()):
        self.calls.append((cadence, list(arguments)))
        r = self.answers[cadence]
        if isinstance(r, list):
            r = r.pop(0)
        if isinstance(r, Exception):
            raise r
        return r


def scripts_dir(tmp_path):
    for name in (PIN_SCRIPT, EDITION_SCRIPT):
        (tmp_path / name).write_text(name, encoding="utf-8")
    return tmp_path


PIN = {
    "editionID": 321,
    "serialNumber": 7,
    "editions": [{"name": "Stitch Holiday", "max": None}],
    "traits": [{"name": "Characters", "value": ["Stitch", "Lilo"]}, {"name": "SetName", "value": "Holiday"}],
}


def test_details_joins_pin_and_edition(tmp_path) -> None:
    client = ScriptClient({PIN_SCRIPT: PIN, EDITION_SCRIPT: {"renderID": "r-9", "maxMintSize": 500}})
    d = PinnacleMetadata(client, scripts_dir(tmp_path), NO_WAIT).details(BUYER, "12345")

    assert d.edition_name == "Stitch Holiday"
    assert d.serial_number == 7
    assert d.characters == "Stitch, Lilo"
    assert d.max_supply == "500"
    assert d.pin_url == "https://disneypinnacle.com/pin/321"
    assert d.image_url == "https://assets.disneypinnacle.com/render/r-9/front.png"
    assert len(client.calls[0][1]) == 2


def test_set_name_used_when_edition_unnamed(tmp_path) -> None:
    pin = {**PIN, "editions": []}
    client = ScriptClient({PIN_SCRIPT: pin, EDITION_SCRIPT: None})
    d = PinnacleMetadata(client, scripts_dir(tmp_path), NO_WAIT).details(BUYER, "1")
    assert d.edition_name == "Holiday"
    assert d.image_url is None
    assert d.max_supply == "N/A"


def test_script_is_retried_then_gives_up(tmp_path) -> None:
    client = ScriptClient({PIN_SCRIPT: [ScriptError("not sealed"), PIN], EDITION_SCRIPT: FetchError("down")})
    d = PinnacleMetadata(client, scripts_dir(tmp_path), NO_WAIT).details(BUYER, "1")
    assert d is not None and d.render_id is None

    client = ScriptClient({PIN_SCRIPT: [ScriptError("a"), ScriptError("b")]})
    assert PinnacleMetadata(client, scripts_dir(tmp_path), NO_WAIT).details(BUYER, "1") is None


def test_null_pin_means_no_details(tmp_path) -> None:
    client = ScriptClient({PIN_SCRIPT: None})
    assert PinnacleMetadata(client, scripts_dir(tmp_path), NO_WAIT).details(BUYER, "1") is None


def test_missing_script_file_means_no_details(tmp_path) -> None:
    assert PinnacleMetadata(ScriptClient({}), tmp_path, NO_WAIT).details(BUYER, "1") is None


def test_characters_of() -> None:
    assert characters_of([{"name": "Characters", "value": "Goofy"}]) == "Goofy"
    assert characters_of([{"name": "Characters", "value": []}]) == "N/A"
    assert characters_of([]) == "N/A"
