from __future__ import annotations

import logging
import statistics
from dataclasses import dataclass, field
from typing import Any, Sequence

from .champion_corpus import ChampionClass
from .detections import (
    Rect,
    TextCluster,
    is_marker_text,
    parse_power_rating,
    parse_rank,
    parse_sig_level,
)
from .roster_config import (
    CELL_HEIGHT_RATIO,
    CELL_WIDTH_RATIO,
    COLUMN_TOLERANCE_RATIO,
    DEFAULT_COLUMNS,
    HEADER_KEYWORDS,
    ICON_ASPECT_RATIO,
    NAME_LABEL_Y_RATIO,
    ROW_TOLERANCE_RATIO,
)

logger = logging.getLogger("roster_scan.grid")


@dataclass
class GridCell:
    row: int
    col: int
    bounds: Rect
    text: str | None = None
    champion_name: str | None = None
    champion_id: int | None = None
    stars: int | None = None
    champion_class: ChampionClass | None = None
    is_awakened: bool = False
    is_ascended: bool = False
    rank: int | None = None
    sig_level: int | None = None
    power_rating: int | None = None
    interpolated: bool = False
    diagnostics: dict[str, Any] = field(default_factory=dict)


@dataclass
class GridEstimate:
    rows: list[list[GridCell]]
    top_boundary: float
    cell_width: float = 0.0
    cell_height: float = 0.0
    column_pitch: float = 0.0
    row_pitch: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def cells(self) -> list[GridCell]:
        return [cell for row in self.rows for cell in row]


def _is_header(text: str) -> bool:
    upper = text.upper()
    return any(keyword in upper for keyword in HEADER_KEYWORDS)


def _is_label(text: str) -> bool:
    return any(ch.isalpha() for ch in text) and not is_marker_text(text)


def _typical_spacing(diffs: list[float]) -> float | None:
    # Median of the smallest spacings; larger gaps are missing slots.
    if not diffs:
        return None
    smallest = min(diffs)
    dense = [d for d in diffs if d <= smallest * 1.5]
    return float(statistics.median(dense))


def _group_rows(labels: list[TextCluster], tolerance: float) -> list[list[TextCluster]]:
    rows: list[list[TextCluster]] = []
    for label in sorted(labels, key=lambda c: c.bounds.center_y):
        if rows:
            current = rows[-1]
            mean_y = sum(c.bounds.center_y for c in current) / len(current)
            if abs(label.bounds.center_y - mean_y) <= tolerance:
                current.append(label)
                continue
        rows.append([label])
    for row in rows:
        row.sort(key=lambda c: c.bounds.center_x)
    return rows


def _row_pitch(labels: list[TextCluster], label_height: float) -> float | None:
    ys = sorted(c.bounds.center_y for c in labels)
    gaps = [b - a for a, b in zip(ys, ys[1:]) if b - a > label_height * 1.5]
    return _typical_spacing(gaps)


def _column_pitch(rows: list[list[TextCluster]], label_height: float) -> float | None:
    diffs: list[float] = []
    for row in rows:
        xs = [c.bounds.center_x for c in row]
        diffs.extend(b - a for a, b in zip(xs, xs[1:]) if b - a > label_height)
    return _typical_spacing(diffs)


def _merge_slot_texts(items: list[TextCluster]) -> str:
    return " ".join(c.text.strip() for c in sorted(items, key=lambda c: c.bounds.x))


def _attach_extras(cells: list[GridCell], extras: list[TextCluster]) -> None:
    for extra in extras:
        cx, cy = extra.bounds.center_x, extra.bounds.center_y
        owner: GridCell | None = None
        for cell in cells:
            b = cell.bounds
            # Power ratings can sit just under the icon frame.
            if b.x <= cx <= b.right and b.y <= cy <= b.bottom + b.height * 0.15:
                owner = cell
                break
        if owner is None:
            continue
        power = parse_power_rating(extra.text)
        if power is not None and owner.power_rating is None:
            owner.power_rating = power
            owner.diagnostics["power_text"] = extra.text
        rank = parse_rank(extra.text)
        if rank is not None:
            owner.rank = rank
        sig = parse_sig_level(extra.text)
        if sig is not None:
            owner.sig_level = sig


def estimate_grid(
    clusters: Sequence[TextCluster],
    image_size: tuple[int, int],
    debug: bool = False,
) -> GridEstimate:
    """Infer the champion grid from clustered text detections.

    Name labels anchor the slots. Rows come from vertical proximity scaled to
    the densest row spacing, columns from the smallest regular horizontal
    spacing. Slots inside a row without readable text receive an interpolated
    box; the trailing row stops at its last detected slot.
    """
    image_width, _ = image_size

    header_line = 0.0
    for cluster in clusters:
        if _is_header(cluster.text):
            header_line = max(header_line, cluster.bounds.bottom)
    if header_line > 0:
        logger.info("header line detected y=%.1f, ignoring content above", header_line)

    labels: list[TextCluster] = []
    extras: list[TextCluster] = []
    for cluster in clusters:
        text = cluster.text.strip()
        if not text or _is_header(text) or cluster.bounds.center_y <= header_line:
            continue
        if parse_power_rating(text) is not None or is_marker_text(text):
            extras.append(cluster)
        elif _is_label(text):
            labels.append(cluster)

    if not labels:
        logger.info("no name labels found, empty grid clusters=%d", len(clusters))
        return GridEstimate(rows=[], top_boundary=header_line)

    label_height = float(statistics.median(c.bounds.height for c in labels)) or 1.0
    row_pitch = _row_pitch(labels, label_height)
    row_tolerance = row_pitch * ROW_TOLERANCE_RATIO if row_pitch else label_height
    label_rows = _group_rows(labels, row_tolerance)

    column_pitch = _column_pitch(label_rows, label_height)
    if column_pitch is None:
        if row_pitch:
            column_pitch = row_pitch * CELL_WIDTH_RATIO / CELL_HEIGHT_RATIO
        else:
            column_pitch = image_width / DEFAULT_COLUMNS
    if row_pitch is None:
        row_pitch = column_pitch * CELL_HEIGHT_RATIO / CELL_WIDTH_RATIO

    cell_width = column_pitch * CELL_WIDTH_RATIO
    cell_height = cell_width * ICON_ASPECT_RATIO
    x_ref = min(c.bounds.center_x for c in labels)

    slotted: list[tuple[float, dict[int, list[TextCluster]]]] = []
    for row_labels in label_rows:
        slots: dict[int, list[TextCluster]] = {}
        for label in row_labels:
            offset = (label.bounds.center_x - x_ref) / column_pitch
            col = int(round(offset))
            if abs(offset - col) > COLUMN_TOLERANCE_RATIO:
                continue
            slots.setdefault(col, []).append(label)
        if not slots:
            continue
        center_y = sum(c.bounds.center_y for c in row_labels) / len(row_labels)
        top = center_y - cell_height * NAME_LABEL_Y_RATIO
        if top < header_line - cell_height * 0.1:
            logger.info("dropping partial row under header top=%.1f header=%.1f", top, header_line)
            continue
        slotted.append((center_y, slots))

    if not slotted:
        return GridEstimate(rows=[], top_boundary=header_line)

    full_columns = max(max(slots) for _, slots in slotted) + 1
    rows: list[list[GridCell]] = []
    for row_index, (center_y, slots) in enumerate(slotted):
        is_trailing = row_index == len(slotted) - 1
        n_cols = max(slots) + 1 if is_trailing else full_columns

        residuals = [
            c.bounds.center_x - (x_ref + col * column_pitch)
            for col, items in slots.items()
            for c in items
        ]
        row_offset = sum(residuals) / len(residuals)
        top = center_y - cell_height * NAME_LABEL_Y_RATIO

        row_cells: list[GridCell] = []
        for col in range(n_cols):
            items = slots.get(col)
            if items:
                center_x = sum(c.bounds.center_x for c in items) / len(items)
            else:
                center_x = x_ref + col * column_pitch + row_offset
            if center_x > image_width:
                break
            bounds = Rect(center_x - cell_width / 2.0, top, cell_width, cell_height)
            cell = GridCell(row=row_index, col=col, bounds=bounds, interpolated=not items)
            if items:
                cell.text = _merge_slot_texts(items)
                confidences = [c.confidence for c in items if c.confidence is not None]
                if confidences:
                    cell.diagnostics["ocr_confidence"] = min(confidences)
            row_cells.append(cell)
        rows.append(row_cells)

    estimate = GridEstimate(
        rows=rows,
        top_boundary=min(cell.bounds.y for cell in rows[0]),
        cell_width=cell_width,
        cell_height=cell_height,
        column_pitch=column_pitch,
        row_pitch=row_pitch,
    )
    _attach_extras(estimate.cells(), extras)

    log = logger.info if debug else logger.debug
    log(
        "grid estimated rows=%d cols=%d cell=%.1fx%.1f pitch=%.1f/%.1f top=%.1f interpolated=%d",
        len(rows),
        full_columns,
        cell_width,
        cell_height,
        column_pitch,
        row_pitch,
        estimate.top_boundary,
        sum(1 for cell in estimate.cells() if cell.interpolated),
    )
    return estimate
