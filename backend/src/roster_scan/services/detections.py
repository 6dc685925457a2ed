from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Sequence

from .roster_config import LINE_GAP_RATIO, MIN_PI_VALUE, TOKEN_GAP_RATIO

logger = logging.getLogger("roster_scan.detections")

Point = tuple[float, float]

_RANK_PATTERN = re.compile(r"rank\s*(\d+)", re.IGNORECASE)
_SIG_PATTERN = re.compile(r"sig[.\s]*(\d+)", re.IGNORECASE)
_NUMBER_NOISE = re.compile(r"[,.\s]")


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2.0

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2.0

    def contains_point(self, x: float, y: float) -> bool:
        return self.x <= x <= self.right and self.y <= y <= self.bottom

    def union(self, other: Rect) -> Rect:
        left = min(self.x, other.x)
        top = min(self.y, other.y)
        right = max(self.right, other.right)
        bottom = max(self.bottom, other.bottom)
        return Rect(left, top, right - left, bottom - top)

    def sub_region(self, ratio: tuple[float, float, float, float]) -> Rect:
        rx, ry, rw, rh = ratio
        return Rect(
            self.x + self.width * rx,
            self.y + self.height * ry,
            self.width * rw,
            self.height * rh,
        )

    @classmethod
    def from_points(cls, points: Sequence[Point]) -> Rect:
        xs = [float(p[0]) for p in points]
        ys = [float(p[1]) for p in points]
        return cls(min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))


@dataclass(frozen=True)
class RawDetection:
    """One token as returned by a text detection provider."""

    text: str
    polygon: tuple[Point, Point, Point, Point]
    confidence: float | None = None

    @property
    def bounds(self) -> Rect:
        return Rect.from_points(self.polygon)


@dataclass(frozen=True)
class TextCluster:
    """Tokens that belong to the same on-screen label."""

    text: str
    bounds: Rect
    confidence: float | None = None
    token_count: int = 1


def parse_power_rating(text: str) -> int | None:
    cleaned = _NUMBER_NOISE.sub("", text)
    if not cleaned.isdigit():
        return None
    value = int(cleaned)
    if value <= MIN_PI_VALUE:
        return None
    return value


def parse_rank(text: str) -> int | None:
    match = _RANK_PATTERN.search(text)
    return int(match.group(1)) if match else None


def parse_sig_level(text: str) -> int | None:
    match = _SIG_PATTERN.search(text)
    return int(match.group(1)) if match else None


def is_marker_text(text: str) -> bool:
    return parse_rank(text) is not None or parse_sig_level(text) is not None


def _is_numeric_text(text: str) -> bool:
    return _NUMBER_NOISE.sub("", text).isdigit()


def _mean_confidence(values: list[float | None]) -> float | None:
    known = [v for v in values if v is not None]
    if not known:
        return None
    return sum(known) / len(known)


def _drop_aggregate(detections: list[RawDetection]) -> list[RawDetection]:
    # Document-style providers put the whole text block first.
    if len(detections) < 2:
        return detections
    head = detections[0]
    if "\n" not in head.text:
        return detections
    box = head.bounds
    for det in detections[1:]:
        b = det.bounds
        if not box.contains_point(b.center_x, b.center_y):
            return detections
    logger.debug("dropped aggregate detection tokens=%d", len(detections) - 1)
    return detections[1:]


@dataclass
class _Line:
    parts: list[RawDetection]
    bounds: Rect

    @property
    def text(self) -> str:
        return " ".join(p.text.strip() for p in self.parts)


def _group_lines(tokens: list[RawDetection]) -> list[_Line]:
    lines: list[_Line] = []
    for token in sorted(tokens, key=lambda d: (d.bounds.x, d.bounds.y)):
        tb = token.bounds
        target: _Line | None = None
        for line in lines:
            last = line.parts[-1].bounds
            height = max(tb.height, last.height, 1.0)
            if abs(tb.center_y - last.center_y) > height * 0.5:
                continue
            gap = tb.x - last.right
            if -height * 0.5 <= gap <= height * TOKEN_GAP_RATIO:
                target = line
                break
        if target is None:
            lines.append(_Line(parts=[token], bounds=tb))
        else:
            target.parts.append(token)
            target.bounds = target.bounds.union(tb)
    return lines


def _stackable(text: str) -> bool:
    return not _is_numeric_text(text) and not is_marker_text(text)


def _merge_stacked(clusters: list[TextCluster]) -> list[TextCluster]:
    ordered = sorted(clusters, key=lambda c: (c.bounds.y, c.bounds.x))
    consumed: set[int] = set()
    out: list[TextCluster] = []
    for i, upper in enumerate(ordered):
        if i in consumed:
            continue
        merged = upper
        if _stackable(upper.text):
            for j in range(i + 1, len(ordered)):
                if j in consumed:
                    continue
                lower = ordered[j]
                if not _stackable(lower.text):
                    continue
                ub, lb = upper.bounds, lower.bounds
                line_height = max(ub.height, lb.height, 1.0)
                gap = lb.y - ub.bottom
                if gap < 0 or gap > line_height * LINE_GAP_RATIO:
                    continue
                if abs(ub.center_x - lb.center_x) > max(ub.width, lb.width) * 0.5:
                    continue
                merged = TextCluster(
                    text=f"{upper.text} {lower.text}",
                    bounds=ub.union(lb),
                    confidence=_mean_confidence([upper.confidence, lower.confidence]),
                    token_count=upper.token_count + lower.token_count,
                )
                consumed.add(j)
                break
        out.append(merged)
    return out


def normalize_detections(detections: Sequence[RawDetection]) -> list[TextCluster]:
    tokens = [d for d in _drop_aggregate(list(detections)) if d.text.strip()]
    if not tokens:
        return []

    line_clusters = [
        TextCluster(
            text=line.text,
            bounds=line.bounds,
            confidence=_mean_confidence([p.confidence for p in line.parts]),
            token_count=len(line.parts),
        )
        for line in _group_lines(tokens)
    ]
    clusters = _merge_stacked(line_clusters)
    clusters.sort(key=lambda c: (c.bounds.y, c.bounds.x))
    logger.debug("normalized detections tokens=%d clusters=%d", len(tokens), len(clusters))
    return clusters
