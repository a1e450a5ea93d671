import io
from typing import Any

import pytest
from PIL import Image

from pinnacle_sales_bot.twitter import TWEETS_URL, RateLimitError, TwitterNotifier, image_candidates
from tests.factories import FakeResponse, FakeSession

CREDS = ("k", "s", "t", "ts")


class StreamResponse(FakeResponse):
    def __init__(self, status_code: int = 200, content: bytes = b"", ctype: str = "image/png") -> None:
        super().__init__(status_code, None)
        self.content = content
        self.headers = {"content-type": ctype}

    def __enter__(self):
        return self

    def __exit__(self, *exc: Any) -> None:
        return None

    def iter_content(self, chunk_size: int = 1024):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]


def png_bytes() -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", (8, 8), (255, 0, 0, 128)).save(buf, "PNG")
    return buf.getvalue()


def test_image_candidates() -> None:
    url = "https://assets.disneypinnacle.com/render/x/front.png"
    assert image_candidates(url) == [url, "https://assets.disneypinnacle.com/render/x/front_cropped.png"]
    assert image_candidates("https://a/b.jpg") == ["https://a/b.jpg"]


def test_missing_credentials_never_post(tmp_path) -> None:
    s = FakeSession([])
    n = TwitterNotifier("k", None, "t", "ts", out_dir=tmp_path, session=s)
    assert n.post("hello") is False
    assert s.calls == []


def test_text_only_post(tmp_path) -> None:
    s = FakeSession([FakeResponse(201, {"data": {"id": "1"}})])
    n = TwitterNotifier(*CREDS, out_dir=tmp_path, session=s)
    assert n.post("hello") is True
    method, url, kw = s.calls[0]
    assert (method, url) == ("POST", TWEETS_URL)
    assert kw["json"] == {"text": "hello"}


def test_rate_limit_raises(tmp_path) -> None:
    s = FakeSession([FakeResponse(429, "slow down")])
    n = TwitterNotifier(*CREDS, out_dir=tmp_path, session=s)
    with pytest.raises(RateLimitError):
        n.post("hello")


def test_post_with_image_falls_back_to_cropped_render(tmp_path) -> None:
    s = FakeSession([
        StreamResponse(404),
        StreamResponse(200, png_bytes()),
        FakeResponse(200, {"media_id_string": "m-1"}),
        FakeResponse(201, {"data": {"id": "2"}}),
    ])
    n = TwitterNotifier(*CREDS, out_dir=tmp_path, session=s)

    assert n.post("pin", "https://assets.disneypinnacle.com/render/x/front.png") is True
    assert s.calls[1][1].endswith("front_cropped.png")
    assert s.calls[3][2]["json"] == {"text": "pin", "media": {"media_ids": ["m-1"]}}
    assert list(tmp_path.glob("pin_*")) == []


def test_oversized_or_non_image_downloads_are_refused(tmp_path) -> None:
    s = FakeSession([StreamResponse(200, b"<html>", ctype="text/html"), StreamResponse(200, b"x" * 100)])
    n = TwitterNotifier(*CREDS, out_dir=tmp_path, session=s, max_image_bytes=10)
    assert n.download_image("https://a/b.jpg") is None
    assert n.download_image("https://a/b.jpg") is None


def test_verify_credentials(tmp_path) -> None:
    s = FakeSession([FakeResponse(200, {"data": {"username": "PinnaclePinBot"}}), FakeResponse(401, "no")])
    n = TwitterNotifier(*CREDS, out_dir=tmp_path, session=s)
    assert n.verify_credentials() is True
    assert n.verify_credentials() is False
