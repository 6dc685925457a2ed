from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

import numpy as np

from .champion_corpus import ChampionClass
from .detections import Rect
from .grid_estimator import GridCell
from .image_source import require_cv2
from .roster_config import (
    ASCENSION_HUE_RANGE,
    ASCENSION_ICON_RATIO,
    ASCENSION_MIN_LIGHTNESS,
    ASCENSION_MIN_SATURATION,
    AWAKENED_GEM_RATIO,
    AWAKENED_MIN_LIGHTNESS,
    AWAKENED_MIN_SATURATION,
    AWAKENED_PIXEL_FRACTION,
    CLASS_HUE_OVERRIDES,
    CLASS_ICON_ALPHA_CUTOFF,
    CLASS_ICON_FILES,
    CLASS_ICON_RATIO,
    CLASS_MAX_HUE_DISTANCE,
    CLASS_MIN_LIGHTNESS,
    CLASS_MIN_PIXELS,
    CLASS_MIN_SATURATION,
    STAR_BREAKPOINTS,
    STAR_BRIGHTNESS_THRESHOLD,
    STARS_CHECK_RATIO,
)

logger = logging.getLogger("roster_scan.features")


def rgb_to_hsl(r: float, g: float, b: float) -> tuple[float, float, float]:
    """Return (hue in degrees, saturation, lightness) for 0-255 channels."""
    r, g, b = r / 255.0, g / 255.0, b / 255.0
    maxc, minc = max(r, g, b), min(r, g, b)
    light = (maxc + minc) / 2.0
    if maxc == minc:
        return 0.0, 0.0, light
    d = maxc - minc
    sat = d / (2.0 - maxc - minc) if light > 0.5 else d / (maxc + minc)
    if maxc == r:
        hue = (g - b) / d + (6.0 if g < b else 0.0)
    elif maxc == g:
        hue = (b - r) / d + 2.0
    else:
        hue = (r - g) / d + 4.0
    return hue * 60.0, sat, light


def bgr_to_hsl_arrays(pixels: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    rgb = pixels[..., ::-1].astype(np.float64) / 255.0
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    maxc = rgb.max(axis=-1)
    minc = rgb.min(axis=-1)
    light = (maxc + minc) / 2.0
    d = maxc - minc
    chroma = d > 0

    sat = np.zeros_like(light)
    denom = np.where(light > 0.5, 2.0 - maxc - minc, maxc + minc)
    sat[chroma] = d[chroma] / denom[chroma]

    safe_d = np.where(chroma, d, 1.0)
    hue = np.where(
        maxc == r,
        np.mod((g - b) / safe_d, 6.0),
        np.where(maxc == g, (b - r) / safe_d + 2.0, (r - g) / safe_d + 4.0),
    )
    hue = np.where(chroma, hue * 60.0, 0.0)
    return hue, sat, light


def hue_distance(a: float, b: float) -> float:
    diff = abs(a - b) % 360.0
    return min(diff, 360.0 - diff)


def stars_from_ratio(ratio: float) -> int:
    for lower, stars in STAR_BREAKPOINTS:
        if ratio > lower:
            return stars
    return 1


def _pixel_box(region: Rect) -> tuple[int, int, int, int]:
    return (
        int(round(region.x)),
        int(round(region.y)),
        int(round(region.width)),
        int(round(region.height)),
    )


def crop_strict(image: np.ndarray, region: Rect) -> np.ndarray | None:
    """Crop only when the region lies fully inside the image."""
    img_h, img_w = image.shape[:2]
    left, top, w, h = _pixel_box(region)
    if w <= 0 or h <= 0 or left < 0 or top < 0 or left + w > img_w or top + h > img_h:
        return None
    return image[top : top + h, left : left + w]


def crop_clamped(image: np.ndarray, region: Rect) -> np.ndarray | None:
    img_h, img_w = image.shape[:2]
    left, top, w, h = _pixel_box(region)
    x0, y0 = max(0, left), max(0, top)
    x1, y1 = min(img_w, left + w), min(img_h, top + h)
    if x1 <= x0 or y1 <= y0:
        return None
    return image[y0:y1, x0:x1]


@dataclass(frozen=True)
class ClassHueProfile:
    """Reference hue per champion class, built once at startup."""

    hues: Mapping[ChampionClass, float]

    @classmethod
    def from_hues(cls, hues: Mapping[ChampionClass, float]) -> ClassHueProfile:
        return cls(hues=MappingProxyType(dict(hues)))

    @classmethod
    def from_icon_images(cls, icons: Mapping[ChampionClass, np.ndarray]) -> ClassHueProfile:
        hues: dict[ChampionClass, float] = {}
        for champion_class, icon in icons.items():
            if icon.ndim == 2:
                icon = np.dstack([icon, icon, icon])
            if icon.shape[2] == 4:
                pixels = icon[..., :3][icon[..., 3] > CLASS_ICON_ALPHA_CUTOFF]
            else:
                pixels = icon[..., :3].reshape(-1, 3)
            if pixels.size == 0:
                logger.warning("class icon has no opaque pixels class=%s", champion_class.value)
                continue
            mean_b, mean_g, mean_r = (float(v) for v in pixels.reshape(-1, 3).mean(axis=0))
            hue, _, _ = rgb_to_hsl(mean_r, mean_g, mean_b)
            hues[champion_class] = hue

        for class_name, hue in CLASS_HUE_OVERRIDES.items():
            hues[ChampionClass(class_name)] = hue
        return cls.from_hues(hues)

    @classmethod
    def from_icon_dir(cls, icon_dir: Path) -> ClassHueProfile:
        cv2 = require_cv2()
        icons: dict[ChampionClass, np.ndarray] = {}
        for class_name, filename in CLASS_ICON_FILES.items():
            path = icon_dir / filename
            icon = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
            if icon is None:
                logger.error("failed to load class icon path=%s", path)
                continue
            icons[ChampionClass(class_name)] = icon
        profile = cls.from_icon_images(icons)
        logger.info("class hue profile ready classes=%d icon_dir=%s", len(profile.hues), icon_dir)
        return profile

    def closest(self, hue: float) -> tuple[ChampionClass | None, float]:
        best: ChampionClass | None = None
        best_distance = float("inf")
        for champion_class, ref_hue in self.hues.items():
            distance = hue_distance(hue, ref_hue)
            if distance < best_distance:
                best_distance = distance
                best = champion_class
        return best, best_distance


def classify_class(
    image: np.ndarray,
    cell: GridCell,
    profile: ClassHueProfile,
) -> ChampionClass | None:
    crop = crop_strict(image, cell.bounds.sub_region(CLASS_ICON_RATIO))
    if crop is None:
        logger.debug("class crop out of bounds row=%d col=%d", cell.row, cell.col)
        cell.diagnostics["class"] = {"reason": "out_of_bounds"}
        return None

    _, sat, light = bgr_to_hsl_arrays(crop)
    mask = (sat > CLASS_MIN_SATURATION) & (light > CLASS_MIN_LIGHTNESS)
    count = int(mask.sum())
    if count < CLASS_MIN_PIXELS:
        logger.debug("class crop too few pixels row=%d col=%d count=%d", cell.row, cell.col, count)
        cell.diagnostics["class"] = {"reason": "insufficient_pixels", "pixels": count}
        return None

    mean_b, mean_g, mean_r = (float(v) for v in crop[mask].mean(axis=0))
    measured_hue, _, _ = rgb_to_hsl(mean_r, mean_g, mean_b)
    best, distance = profile.closest(measured_hue)
    cell.diagnostics["class"] = {
        "hue": round(measured_hue, 1),
        "best": best.value if best else None,
        "distance": round(distance, 1) if best else None,
        "pixels": count,
    }
    if best is not None and distance <= CLASS_MAX_HUE_DISTANCE:
        return best
    return None


def classify_stars(image: np.ndarray, cell: GridCell) -> int | None:
    crop = crop_clamped(image, cell.bounds.sub_region(STARS_CHECK_RATIO))
    if crop is None:
        logger.debug("star strip out of bounds row=%d col=%d", cell.row, cell.col)
        cell.diagnostics["stars"] = {"reason": "out_of_bounds"}
        return None

    pixels = crop.astype(np.float64)
    gray = 0.299 * pixels[..., 2] + 0.587 * pixels[..., 1] + 0.114 * pixels[..., 0]
    bright_columns = np.flatnonzero((gray > STAR_BRIGHTNESS_THRESHOLD).any(axis=0))
    sample_width = crop.shape[1]
    if bright_columns.size == 0:
        content_width = 0
    else:
        content_width = int(bright_columns[-1] - bright_columns[0] + 1)
    ratio = content_width / sample_width

    cell.diagnostics["stars"] = {
        "width_ratio": round(ratio, 3),
        "content_width": content_width,
        "sample_width": sample_width,
    }
    return stars_from_ratio(ratio)


def is_gold(hue: float, sat: float, light: float) -> bool:
    low, high = ASCENSION_HUE_RANGE
    return low <= hue <= high and sat > ASCENSION_MIN_SATURATION and light > ASCENSION_MIN_LIGHTNESS


def classify_ascension(image: np.ndarray, cell: GridCell) -> bool:
    crop = crop_clamped(image, cell.bounds.sub_region(ASCENSION_ICON_RATIO))
    if crop is None:
        logger.debug("ascension crop out of bounds row=%d col=%d", cell.row, cell.col)
        cell.diagnostics["ascension"] = {"reason": "out_of_bounds"}
        return False

    mean_b, mean_g, mean_r = (float(v) for v in crop.reshape(-1, 3).mean(axis=0))
    hue, sat, light = rgb_to_hsl(mean_r, mean_g, mean_b)
    cell.diagnostics["ascension"] = {
        "rgb": [round(mean_r), round(mean_g), round(mean_b)],
        "hsl": [round(hue), round(sat, 2), round(light, 2)],
    }
    return is_gold(hue, sat, light)


def classify_awakened(image: np.ndarray, cell: GridCell) -> bool:
    crop = crop_clamped(image, cell.bounds.sub_region(AWAKENED_GEM_RATIO))
    if crop is None:
        logger.debug("awakened crop out of bounds row=%d col=%d", cell.row, cell.col)
        cell.diagnostics["awakened"] = {"reason": "out_of_bounds"}
        return False

    _, sat, light = bgr_to_hsl_arrays(crop)
    vivid = (sat > AWAKENED_MIN_SATURATION) & (light > AWAKENED_MIN_LIGHTNESS)
    fraction = float(vivid.mean())
    cell.diagnostics["awakened"] = {"vivid_fraction": round(fraction, 3)}
    return fraction >= AWAKENED_PIXEL_FRACTION


def classify_cell(image: np.ndarray, cell: GridCell, profile: ClassHueProfile) -> None:
    cell.champion_class = classify_class(image, cell, profile)
    cell.stars = classify_stars(image, cell)
    cell.is_ascended = classify_ascension(image, cell)
    cell.is_awakened = classify_awakened(image, cell) or bool(cell.sig_level)
