from __future__ import annotations

import logging
from typing import Iterable

import numpy as np

from .grid_estimator import GridCell, GridEstimate
from .image_source import require_cv2
from .roster_config import (
    ASCENSION_ICON_RATIO,
    AWAKENED_GEM_RATIO,
    CLASS_ICON_RATIO,
    PORTRAIT_RATIO,
    STARS_CHECK_RATIO,
)

logger = logging.getLogger("roster_scan.debug")

# BGR
CELL_COLOR = (0, 255, 0)
INTERPOLATED_COLOR = (0, 160, 0)
TOP_LINE_COLOR = (0, 0, 255)
REGION_COLORS = (
    (CLASS_ICON_RATIO, (255, 0, 0)),
    (STARS_CHECK_RATIO, (255, 255, 0)),
    (ASCENSION_ICON_RATIO, (0, 165, 255)),
    (PORTRAIT_RATIO, (0, 255, 255)),
    (AWAKENED_GEM_RATIO, (255, 0, 255)),
)
LABEL_COLOR = (255, 255, 255)


def _pt(x: float, y: float) -> tuple[int, int]:
    return int(round(x)), int(round(y))


def _cell_caption(cell: GridCell) -> str:
    if cell.champion_name is None:
        return "?" if cell.text else ""
    stars = f"{cell.stars}*" if cell.stars is not None else "?*"
    cls = cell.champion_class.value[:3] if cell.champion_class else "---"
    return f"{cell.champion_name} {stars} {cls}"


def render_debug_image(image: np.ndarray, grid: GridEstimate) -> np.ndarray:
    """Draw cells, sampling regions and the top boundary on a copy of the image."""
    cv2 = require_cv2()
    debug = image.copy()
    height, width = debug.shape[:2]

    top = int(round(grid.top_boundary))
    if 0 <= top < height:
        cv2.line(debug, (0, top), (width - 1, top), TOP_LINE_COLOR, 2)

    for cell in grid.cells():
        b = cell.bounds
        color = INTERPOLATED_COLOR if cell.interpolated else CELL_COLOR
        cv2.rectangle(debug, _pt(b.x, b.y), _pt(b.right, b.bottom), color, 2)
        for ratio, region_color in REGION_COLORS:
            r = b.sub_region(ratio)
            cv2.rectangle(debug, _pt(r.x, r.y), _pt(r.right, r.bottom), region_color, 1)

        caption = _cell_caption(cell)
        if caption:
            origin = _pt(b.x + 2, min(height - 4, b.bottom - 4))
            cv2.putText(debug, caption, origin, cv2.FONT_HERSHEY_SIMPLEX, 0.4, (0, 0, 0), 3)
            cv2.putText(debug, caption, origin, cv2.FONT_HERSHEY_SIMPLEX, 0.4, LABEL_COLOR, 1)

    logger.debug("debug overlay rendered cells=%d", len(grid.cells()))
    return debug


def summary_line(cell: GridCell) -> str:
    marker = "★" if cell.is_awakened else "☆"
    parts = ["-", marker, cell.champion_name or "?"]
    if cell.stars is not None:
        parts.append(f"{cell.stars}*")
    if cell.rank is not None:
        parts.append(f"R{cell.rank}")
    if cell.power_rating is not None:
        parts.append(f"({cell.power_rating})")
    return " ".join(parts)


def summarize_cells(cells: Iterable[GridCell]) -> list[str]:
    return [summary_line(cell) for cell in cells if cell.champion_name is not None]
