from __future__ import annotations

from typing import Final

# Sub-regions are (x, y, width, height) ratios of the cell bounds.
Region = tuple[float, float, float, float]

# Detection normalizer
TOKEN_GAP_RATIO: Final[float] = 0.8
LINE_GAP_RATIO: Final[float] = 0.6

# Grid structure
MIN_PI_VALUE: Final[int] = 300
DEFAULT_COLUMNS: Final[int] = 7
CELL_WIDTH_RATIO: Final[float] = 0.93
CELL_HEIGHT_RATIO: Final[float] = 1.16
ICON_ASPECT_RATIO: Final[float] = CELL_HEIGHT_RATIO / CELL_WIDTH_RATIO
# Vertical position of the name label center inside a cell.
NAME_LABEL_Y_RATIO: Final[float] = 0.76
ROW_TOLERANCE_RATIO: Final[float] = 0.35
COLUMN_TOLERANCE_RATIO: Final[float] = 0.35
HEADER_KEYWORDS: Final[tuple[str, ...]] = ("MASTERIES", "CRAFTING")

CLASS_ICON_RATIO: Final[Region] = (0.04, 0.82, 0.16, 0.14)
ASCENSION_ICON_RATIO: Final[Region] = (0.78, 0.84, 0.16, 0.10)
PORTRAIT_RATIO: Final[Region] = (0.28, 0.18, 0.44, 0.40)
STARS_CHECK_RATIO: Final[Region] = (0.02, 0.64, 0.96, 0.05)
AWAKENED_GEM_RATIO: Final[Region] = (0.40, 0.04, 0.20, 0.10)
REFERENCE_PORTRAIT_CROP: Final[Region] = (0.265, 0.15, 0.47, 0.65)

# Name resolution
NAME_MATCH_THRESHOLD: Final[float] = 75.0
OCR_CHAR_SUBSTITUTIONS: Final[dict[str, str]] = {
    "0": "o",
    "1": "l",
    "i": "l",
    "|": "l",
    "5": "s",
    "$": "s",
    "8": "b",
}

# Portrait disambiguation (Hamming distance over 256 bits)
PORTRAIT_HASH_SIZE: Final[int] = 16
PORTRAIT_MATCH_THRESHOLD: Final[int] = 90

# Class classifier
CLASS_MIN_SATURATION: Final[float] = 0.15
CLASS_MIN_LIGHTNESS: Final[float] = 0.20
CLASS_MIN_PIXELS: Final[int] = 10
CLASS_MAX_HUE_DISTANCE: Final[float] = 30.0
CLASS_ICON_ALPHA_CUTOFF: Final[int] = 128
CLASS_HUE_OVERRIDES: Final[dict[str, float]] = {"TECH": 225.0}
CLASS_ICON_FILES: Final[dict[str, str]] = {
    "COSMIC": "Cosmic.png",
    "TECH": "Tech.png",
    "MUTANT": "Mutant.png",
    "SKILL": "Skill.png",
    "SCIENCE": "Science.png",
    "MYSTIC": "Mystic.png",
    "SUPERIOR": "superior.png",
}

# Star classifier
STAR_BRIGHTNESS_THRESHOLD: Final[float] = 120.0
# (exclusive lower bound, stars), checked top-down.
STAR_BREAKPOINTS: Final[tuple[tuple[float, int], ...]] = (
    (0.90, 7),
    (0.75, 6),
    (0.60, 5),
    (0.45, 4),
    (0.30, 3),
    (0.15, 2),
)

# Ascension classifier
ASCENSION_HUE_RANGE: Final[tuple[float, float]] = (25.0, 65.0)
ASCENSION_MIN_SATURATION: Final[float] = 0.20
ASCENSION_MIN_LIGHTNESS: Final[float] = 0.20

# Awakened classifier
AWAKENED_MIN_SATURATION: Final[float] = 0.35
AWAKENED_MIN_LIGHTNESS: Final[float] = 0.35
AWAKENED_PIXEL_FRACTION: Final[float] = 0.25

MIN_STARS: Final[int] = 1
MAX_STARS: Final[int] = 7
