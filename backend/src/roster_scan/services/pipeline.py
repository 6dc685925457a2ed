from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Union

from .ambiguity import PortraitIndex, resolve_ambiguous
from .champion_corpus import ChampionCorpus
from .debug_render import render_debug_image, summarize_cells
from .detections import normalize_detections
from .errors import NoTextDetectedError
from .grid_estimator import GridCell, estimate_grid
from .image_source import decode_image, encode_png
from .name_resolver import NameResolver
from .roster_store import RosterRecord, RosterStore, ScanMode, reconcile_roster
from .text_detection import TextDetector
from .visual_attributes import ClassHueProfile, classify_cell

logger = logging.getLogger("roster_scan.pipeline")

NO_TEXT_MESSAGE = "Could not detect any text in the image."


@dataclass(frozen=True)
class RecognitionContext:
    """Process-wide reference data shared read-only by every run."""

    corpus: ChampionCorpus
    hue_profile: ClassHueProfile
    portrait_index: PortraitIndex
    detector: TextDetector
    name_resolver: NameResolver = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "name_resolver", NameResolver(self.corpus))


@dataclass
class PersistResult:
    resolved_count: int
    persisted_records: list[RosterRecord]
    skipped: list[str] = field(default_factory=list)


@dataclass
class DebugResult:
    message: str
    entries: list[str] = field(default_factory=list)
    debug_image: bytes | None = None
    cells: list[GridCell] = field(default_factory=list, repr=False)


ScanResult = Union[PersistResult, DebugResult]


def _unrecognized(cells: list[GridCell]) -> list[str]:
    return [
        f"unrecognized text {cell.text!r} (row {cell.row + 1}, col {cell.col + 1})"
        for cell in cells
        if cell.text and cell.champion_name is None
    ]


def _no_content(debug: bool) -> DebugResult:
    if debug:
        return DebugResult(message=NO_TEXT_MESSAGE)
    raise NoTextDetectedError(f"{NO_TEXT_MESSAGE} Please upload a clearer screenshot.")


def process_roster_screenshot(
    image_bytes: bytes,
    context: RecognitionContext,
    *,
    store: RosterStore | None = None,
    player_id: str | None = None,
    mode: ScanMode = ScanMode.ROSTER,
    stars: int | None = None,
    rank: int | None = None,
    is_ascended: bool | None = None,
    debug: bool = False,
) -> ScanResult:
    """Recognize the champions in one roster screenshot.

    Debug mode returns a :class:`DebugResult` with an overlay and a summary and
    never writes. Otherwise the resolved cells are reconciled into ``store`` for
    ``player_id`` and a :class:`PersistResult` is returned.
    """
    if not debug:
        if not player_id:
            raise ValueError("player_id is required outside debug mode")
        if store is None:
            raise ValueError("store is required outside debug mode")

    started = time.perf_counter()
    detections = context.detector.detect(image_bytes)
    if not detections:
        logger.info("no text detected player=%s debug=%s", player_id, debug)
        return _no_content(debug)

    image = decode_image(image_bytes)
    height, width = image.shape[:2]
    clusters = normalize_detections(detections)
    grid = estimate_grid(clusters, (width, height), debug=debug)
    if grid.is_empty:
        logger.info(
            "no roster content player=%s debug=%s tokens=%d clusters=%d",
            player_id,
            debug,
            len(detections),
            len(clusters),
        )
        return _no_content(debug)
    cells = grid.cells()

    context.name_resolver.resolve_cells(cells)
    resolve_ambiguous(cells, image, context.corpus, context.portrait_index)
    resolved = [cell for cell in cells if cell.champion_name is not None]
    for cell in resolved:
        classify_cell(image, cell, context.hue_profile)
    skipped = _unrecognized(cells)

    logger.info(
        "screenshot processed tokens=%d clusters=%d cells=%d resolved=%d unrecognized=%d duration_ms=%.1f",
        len(detections),
        len(clusters),
        len(cells),
        len(resolved),
        len(skipped),
        (time.perf_counter() - started) * 1000.0,
    )

    if debug:
        overlay = encode_png(render_debug_image(image, grid))
        return DebugResult(
            message=f"Recognized {len(resolved)} of {len(cells)} grid cells.",
            entries=summarize_cells(resolved),
            debug_image=overlay,
            cells=cells,
        )

    outcome = reconcile_roster(
        resolved,
        store,  # type: ignore[arg-type]
        player_id,  # type: ignore[arg-type]
        mode=mode,
        stars=stars,
        rank=rank,
        is_ascended=is_ascended,
    )
    return PersistResult(
        resolved_count=len(resolved),
        persisted_records=outcome.records,
        skipped=skipped + outcome.skipped,
    )
