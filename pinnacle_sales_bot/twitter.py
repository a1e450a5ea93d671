# -------------------------
# Twitter (Free-plan friendly): v1.1 media/upload + v2 /tweets, OAuth 1.0a user context
# -------------------------
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
from PIL import Image, UnidentifiedImageError
from requests_oauthlib import OAuth1

from .flow import HTTP_TIMEOUT, make_session
from .logs import log

MEDIA_UPLOAD_URL = "https://upload.twitter.com/1.1/media/upload.json"
TWEETS_URL = "https://api.twitter.com/2/tweets"
ME_URL = "https://api.twitter.com/2/users/me"

MAX_IMAGE_BYTES = 15 * 1024 * 1024  # 15MB
IMAGE_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; PinnacleBot/1.0)",
    "Referer": "https://disneypinnacle.com/",
}


# Custom exceptions
class RateLimitError(Exception):
    """Raised when Twitter API rate limit is hit (HTTP 429)"""
    pass


def image_candidates(url: str) -> List[str]:
    """Full render first, cropped render as fallback."""
    if url.endswith("/front.png"):
        return [url, url[: -len("front.png")] + "front_cropped.png"]
    return [url]


class TwitterNotifier:
    def __init__(self, app_key: Optional[str], app_secret: Optional[str],
                 access_token: Optional[str], access_secret: Optional[str],
                 out_dir: Path, session: Optional[requests.Session] = None,
                 max_image_bytes: int = MAX_IMAGE_BYTES):
        self.creds = (app_key, app_secret, access_token, access_secret)
        self.out_dir = Path(out_dir)
        self.out_dir.mkdir(parents=True, exist_ok=True)
        self.s = session or make_session("pinnacle-sales-bot/1.0")
        self.max_image_bytes = max_image_bytes

    def oauth1(self) -> Optional[OAuth1]:
        if not all(self.creds):
            log("Twitter creds missing; cannot post.", "ERROR")
            return None
        return OAuth1(*self.creds)

    def verify_credentials(self) -> bool:
        auth = self.oauth1()
        if not auth:
            return False
        try:
            r = self.s.get(ME_URL, auth=auth, timeout=HTTP_TIMEOUT)
        except requests.RequestException as e:
            log(f"Twitter credential check failed: {e}", "ERROR")
            return False
        if r.status_code != 200:
            log(f"Twitter credential check failed [{r.status_code}]: {r.text}", "ERROR")
            return False
        user = ((r.json() or {}).get("data") or {}).get("username")
        log(f"Twitter client initialized as @{user}", "INFO")
        return True

    # ---- images ----
    def _download_limited(self, u: str) -> Optional[bytes]:
        try:
            with self.s.get(u, headers=IMAGE_HEADERS, timeout=HTTP_TIMEOUT, stream=True) as r:
                if r.status_code != 200:
                    return None
                ctype = r.headers.get("content-type", "")
                if not ctype.startswith("image/"):
                    log(f"invalid content type for image {u}: {ctype}", "WARN")
                    return None
                total = 0
                chunks = []
                for chunk in r.iter_content(chunk_size=64 * 1024):
                    if not chunk:
                        break
                    total += len(chunk)
                    if total > self.max_image_bytes:
                        log(f"image too large (> {self.max_image_bytes} bytes): {u}", "WARN")
                        return None
                    chunks.append(chunk)
                return b"".join(chunks)
        except requests.RequestException as e:
            log(f"download failed {u}: {e}", "WARN")
            return None

    def download_image(self, url: str) -> Optional[Path]:
        """First candidate that downloads and decodes, re-encoded as JPEG."""
        for cand in image_candidates(url):
            b = self._download_limited(cand)
            if not b:
                continue
            temp_p = self.out_dir / f"pin_{int(time.time()*1000)}_temp.img"
            try:
                temp_p.write_bytes(b)
                with Image.open(str(temp_p)) as img:
                    img_rgb = img.convert("RGB")
                    output_p = self.out_dir / f"pin_{int(time.time()*1000)}.jpg"
                    img_rgb.save(str(output_p), "JPEG", quality=95, optimize=True)
                return output_p
            except (UnidentifiedImageError, OSError) as e:
                log(f"image conversion failed for {cand}: {e}", "WARN")
                continue
            finally:
                temp_p.unlink(missing_ok=True)
        return None

    # ---- posting ----
    def upload_media_v11(self, auth: OAuth1, image_path: str) -> Optional[str]:
        try:
            with open(image_path, "rb") as f:
                files = {"media": (Path(image_path).name, f, "application/octet-stream")}
                r = self.s.post(MEDIA_UPLOAD_URL, auth=auth, files=files, timeout=HTTP_TIMEOUT)
        except (requests.RequestException, OSError) as e:
            log(f"media upload error: {e}", "ERROR")
            return None
        if r.status_code != 200:
            log(f"media/upload failed [{r.status_code}]: {r.text}", "ERROR")
            return None
        return (r.json() or {}).get("media_id_string")

    def post_tweet_v2(self, auth: OAuth1, text: str, media_ids: Optional[List[str]]) -> bool:
        payload: Dict[str, Any] = {"text": text}
        if media_ids:
            payload["media"] = {"media_ids": media_ids}
        r = self.s.post(TWEETS_URL, auth=auth, json=payload, timeout=HTTP_TIMEOUT)
        if r.status_code == 429:
            log(f"/2/tweets rate limited [429]: {r.text}", "WARN")
            raise RateLimitError(f"Twitter API rate limit hit: {r.text}")
        if r.status_code not in (200, 201):
            log(f"/2/tweets failed [{r.status_code}]: {r.text}", "ERROR")
            return False
        log(f"Tweet posted: {(r.json() or {}).get('data',{}).get('id')}", "INFO")
        return True

    def post(self, text: str, image_url: Optional[str] = None) -> bool:
        """Post text with an optional image; text only if the image cannot be fetched."""
        auth = self.oauth1()
        if not auth:
            return False
        media_ids = None
        img_path = self.download_image(image_url) if image_url else None
        if img_path:
            try:
                mid = self.upload_media_v11(auth, str(img_path))
                media_ids = [mid] if mid else None
            finally:
                img_path.unlink(missing_ok=True)
        elif image_url:
            log(f"no usable image at {image_url}; posting text only", "WARN")
        return self.post_tweet_v2(auth, text, media_ids)
