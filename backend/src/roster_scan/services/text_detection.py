from __future__ import annotations

import logging
import threading
from typing import Any, Protocol

import numpy as np

from .detections import Point, RawDetection
from .errors import DetectionProviderError, OcrDependencyError
from .image_source import decode_image

logger = logging.getLogger("roster_scan.ocr")


class TextDetector(Protocol):
    def detect(self, image_bytes: bytes) -> list[RawDetection]:
        """Return every text token found in the image; an empty list is valid."""
        ...


def _safe_float(value: object, default: float = 0.0) -> float:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


def _quad(points: Any) -> tuple[Point, Point, Point, Point] | None:
    try:
        arr = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    except (TypeError, ValueError):
        return None
    if arr.shape[0] < 4:
        return None
    return tuple((float(x), float(y)) for x, y in arr[:4])  # type: ignore[return-value]


def _box_quad(left: float, top: float, width: float, height: float) -> tuple[Point, Point, Point, Point]:
    return (
        (left, top),
        (left + width, top),
        (left + width, top + height),
        (left, top + height),
    )


def _field(page: Any, key: str) -> Any:
    value = page.get(key)
    return [] if value is None else value


def parse_paddle_result(result: Any) -> list[RawDetection]:
    """Accept both the list-of-lines layout and the dict pages of PaddleOCR 3."""
    out: list[RawDetection] = []
    for page in result or []:
        if isinstance(page, dict) or hasattr(page, "get"):
            texts = _field(page, "rec_texts")
            scores = _field(page, "rec_scores")
            polys = _field(page, "rec_polys")
            if not len(polys):
                polys = _field(page, "dt_polys")
            for idx, text in enumerate(texts):
                quad = _quad(polys[idx]) if idx < len(polys) else None
                text = str(text or "").strip()
                if not text or quad is None:
                    continue
                conf = _safe_float(scores[idx]) if idx < len(scores) else None
                out.append(RawDetection(text=text, polygon=quad, confidence=conf))
            continue

        for line in page or []:
            if not isinstance(line, (list, tuple)) or len(line) < 2:
                continue
            quad = _quad(line[0])
            text_conf = line[1]
            if quad is None or not isinstance(text_conf, (list, tuple)) or len(text_conf) < 2:
                continue
            text = str(text_conf[0] or "").strip()
            if text:
                out.append(
                    RawDetection(text=text, polygon=quad, confidence=_safe_float(text_conf[1]))
                )
    return out


def parse_tesseract_data(data: dict[str, list[Any]]) -> list[RawDetection]:
    texts = data.get("text", [])
    confs = data.get("conf", [])
    out: list[RawDetection] = []
    for idx, raw in enumerate(texts):
        text = str(raw or "").strip()
        if not text:
            continue
        conf = _safe_float(confs[idx], -1.0) if idx < len(confs) else -1.0
        quad = _box_quad(
            _safe_float(data["left"][idx]),
            _safe_float(data["top"][idx]),
            _safe_float(data["width"][idx]),
            _safe_float(data["height"][idx]),
        )
        confidence = max(0.0, min(1.0, conf / 100.0)) if conf >= 0 else None
        out.append(RawDetection(text=text, polygon=quad, confidence=confidence))
    return out


class LocalOcrDetector:
    """Runs PaddleOCR when installed, otherwise Tesseract word boxes."""

    def __init__(self, lang: str = "en", prefer: str = "paddle") -> None:
        self._lang = lang
        self._prefer = prefer
        self._paddle: Any = None
        self._lock = threading.Lock()

    def _paddle_engine(self) -> Any | None:
        try:
            from paddleocr import PaddleOCR  # type: ignore
        except Exception:  # noqa: BLE001
            return None
        with self._lock:
            if self._paddle is None:
                try:
                    self._paddle = PaddleOCR(use_angle_cls=False, lang=self._lang)
                except Exception as exc:  # noqa: BLE001
                    raise DetectionProviderError(f"paddleocr init failed: {exc}") from exc
            return self._paddle

    def _detect_paddle(self, engine: Any, image: np.ndarray) -> list[RawDetection]:
        try:
            if hasattr(engine, "predict"):
                result = engine.predict(image)
            else:
                result = engine.ocr(image, cls=False)
        except Exception as exc:  # noqa: BLE001
            raise DetectionProviderError(f"paddleocr failed: {exc}") from exc
        return parse_paddle_result(result)

    def _detect_tesseract(self, image: np.ndarray) -> list[RawDetection]:
        try:
            import pytesseract  # type: ignore
            from pytesseract import TesseractNotFoundError  # type: ignore
        except Exception as exc:  # noqa: BLE001
            raise OcrDependencyError("paddleocr or pytesseract is required") from exc

        try:
            data = pytesseract.image_to_data(
                image[..., ::-1],
                lang="eng",
                config="--oem 3 --psm 11",
                output_type=pytesseract.Output.DICT,
            )
        except TesseractNotFoundError as exc:
            raise OcrDependencyError(
                "pytesseract failed: tesseract is not installed or not in PATH"
            ) from exc
        except Exception as exc:  # noqa: BLE001
            raise DetectionProviderError(f"tesseract OCR failed: {exc}") from exc
        return parse_tesseract_data(data)

    def detect(self, image_bytes: bytes) -> list[RawDetection]:
        image = decode_image(image_bytes)
        engine = self._paddle_engine() if self._prefer == "paddle" else None
        if engine is not None:
            detections = self._detect_paddle(engine, image)
            backend = "paddleocr"
        else:
            detections = self._detect_tesseract(image)
            backend = "tesseract"
        logger.info("text detection done backend=%s tokens=%d", backend, len(detections))
        return detections
