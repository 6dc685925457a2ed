from __future__ import annotations

import logging
import socket
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import urlparse
from urllib.request import Request, urlopen

import numpy as np

from .errors import ImageSourceError, OcrDependencyError

DEFAULT_TIMEOUT_SECONDS = 10.0
USER_AGENT = "Mozilla/5.0 (roster-scan)"

logger = logging.getLogger("roster_scan.image")


def require_cv2() -> Any:
    try:
        import cv2  # type: ignore
    except Exception as exc:  # noqa: BLE001
        raise OcrDependencyError("opencv-python-headless is required") from exc
    return cv2


def fetch_image_bytes(url: str, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> bytes:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise ImageSourceError(f"unsupported image url scheme: {parsed.scheme or '(none)'}")

    req = Request(url, headers={"User-Agent": USER_AGENT})
    try:
        with urlopen(req, timeout=timeout_seconds) as response:
            status = getattr(response, "status", None) or response.getcode()
            if status != 200:
                raise ImageSourceError(f"image host returned non-200 status: {status}")
            payload = response.read()
    except HTTPError as exc:
        raise ImageSourceError(f"image host returned HTTP error: {exc.code}") from exc
    except URLError as exc:
        raise ImageSourceError(f"failed to reach image host: {exc.reason}") from exc
    except socket.timeout as exc:
        raise ImageSourceError("image download timed out") from exc
    except TimeoutError as exc:
        raise ImageSourceError("image download timed out") from exc

    if not payload:
        raise ImageSourceError("image host returned an empty body")
    logger.debug("image fetched url=%s bytes=%d", url, len(payload))
    return payload


def load_image_bytes(
    source: str | bytes,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> bytes:
    if isinstance(source, (bytes, bytearray, memoryview)):
        payload = bytes(source)
        if not payload:
            raise ImageSourceError("empty image bytes")
        return payload
    return fetch_image_bytes(str(source), timeout_seconds=timeout_seconds)


def decode_image(image_bytes: bytes) -> np.ndarray:
    """Decode to a BGR array, the layout every classifier reads."""
    if not image_bytes:
        raise ImageSourceError("empty image bytes")
    cv2 = require_cv2()
    arr = np.frombuffer(image_bytes, dtype=np.uint8)
    image = cv2.imdecode(arr, cv2.IMREAD_COLOR)
    if image is None:
        raise ImageSourceError("failed to decode image bytes")
    return image


def encode_png(image: np.ndarray) -> bytes:
    cv2 = require_cv2()
    ok, buf = cv2.imencode(".png", image)
    if not ok:
        raise ImageSourceError("failed to encode png")
    return buf.tobytes()
