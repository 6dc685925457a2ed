from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping

import numpy as np

from .champion_corpus import ChampionCorpus, ChampionCorpusEntry
from .detections import Rect
from .grid_estimator import GridCell
from .image_source import require_cv2
from .roster_config import (
    PORTRAIT_HASH_SIZE,
    PORTRAIT_MATCH_THRESHOLD,
    PORTRAIT_RATIO,
    REFERENCE_PORTRAIT_CROP,
)
from .visual_attributes import crop_clamped

logger = logging.getLogger("roster_scan.ambiguity")


def _center_square(image: np.ndarray) -> np.ndarray:
    h, w = image.shape[:2]
    side = min(h, w)
    top = (h - side) // 2
    left = (w - side) // 2
    return image[top : top + side, left : left + side]


def average_hash(image: np.ndarray, size: int = PORTRAIT_HASH_SIZE) -> int:
    """Luminance average hash of the centered square, size*size bits."""
    cv2 = require_cv2()
    square = _center_square(image)
    if square.ndim == 3:
        square = cv2.cvtColor(square[..., :3], cv2.COLOR_BGR2GRAY)
    resized = cv2.resize(square, (size, size), interpolation=cv2.INTER_AREA)
    flat = resized.astype(np.float64).flatten()
    mean = flat.mean()
    bits = 0
    for value in flat:
        bits = (bits << 1) | (1 if value >= mean else 0)
    return int(bits)


def hamming_distance(a: int, b: int) -> int:
    return (a ^ b).bit_count()


@dataclass(frozen=True)
class PortraitIndex:
    hashes: Mapping[int, int]

    @classmethod
    def from_hashes(cls, hashes: Mapping[int, int]) -> PortraitIndex:
        return cls(hashes=MappingProxyType(dict(hashes)))

    @classmethod
    def empty(cls) -> PortraitIndex:
        return cls.from_hashes({})

    @classmethod
    def from_image_dir(cls, image_dir: Path, corpus: ChampionCorpus) -> PortraitIndex:
        """Hash the portrait area of each ``<championId>.png`` reference image."""
        cv2 = require_cv2()
        hashes: dict[int, int] = {}
        for entry in corpus.entries:
            path = image_dir / f"{entry.id}.png"
            if not path.exists():
                continue
            img = cv2.imread(str(path), cv2.IMREAD_COLOR)
            if img is None:
                logger.warning("failed to read portrait path=%s", path)
                continue
            h, w = img.shape[:2]
            crop = crop_clamped(img, Rect(0.0, 0.0, float(w), float(h)).sub_region(REFERENCE_PORTRAIT_CROP))
            if crop is None:
                continue
            hashes[entry.id] = average_hash(crop)
        logger.info("portrait index ready portraits=%d image_dir=%s", len(hashes), image_dir)
        return cls.from_hashes(hashes)

    def __len__(self) -> int:
        return len(self.hashes)

    def closest(
        self,
        portrait_hash: int,
        candidates: Iterable[ChampionCorpusEntry],
    ) -> tuple[ChampionCorpusEntry | None, int | None]:
        best: ChampionCorpusEntry | None = None
        best_distance: int | None = None
        for entry in candidates:
            reference = self.hashes.get(entry.id)
            if reference is None:
                continue
            distance = hamming_distance(portrait_hash, reference)
            if best_distance is None or distance < best_distance:
                best = entry
                best_distance = distance
        return best, best_distance


def _spelled_variant(
    cell: GridCell, variants: tuple[ChampionCorpusEntry, ...]
) -> ChampionCorpusEntry | None:
    """The variant the name resolver already matched on its full name, if any."""
    match = cell.diagnostics.get("name_match") or {}
    if match.get("field") != "name":
        return None
    for entry in variants:
        if entry.id == cell.champion_id:
            return entry
    return None


def resolve_ambiguous(
    cells: Iterable[GridCell],
    image: np.ndarray,
    corpus: ChampionCorpus,
    index: PortraitIndex,
    threshold: int = PORTRAIT_MATCH_THRESHOLD,
) -> int:
    """Pick the concrete variant for cells whose short name several champions share.

    Returns the number of cells settled by portrait comparison. Cells already
    examined carry a ``disambiguated`` marker and are skipped on later calls.
    """
    ambiguous = corpus.ambiguous_short_names
    settled = 0
    for cell in cells:
        if cell.diagnostics.get("disambiguated"):
            continue
        if cell.champion_name is None or cell.champion_name not in ambiguous:
            continue

        variants = corpus.variants(cell.champion_name)
        chosen: ChampionCorpusEntry | None = None
        distance: int | None = None
        spelled = _spelled_variant(cell, variants)
        if spelled is not None:
            chosen = spelled
            logger.debug(
                "ambiguous name spelled out row=%d col=%d name=%s", cell.row, cell.col, spelled.name
            )
        elif len(index):
            crop = crop_clamped(image, cell.bounds.sub_region(PORTRAIT_RATIO))
            if crop is not None:
                best, best_distance = index.closest(average_hash(crop), variants)
                if best is not None and best_distance is not None and best_distance <= threshold:
                    chosen, distance = best, best_distance

        if chosen is None:
            chosen = variants[0]
            cell.diagnostics["ambiguous_unresolved"] = True
            logger.info(
                "ambiguous name kept first variant row=%d col=%d short_name=%s name=%s",
                cell.row,
                cell.col,
                cell.champion_name,
                chosen.name,
            )
        elif spelled is None:
            settled += 1
            logger.debug(
                "ambiguous name resolved row=%d col=%d short_name=%s name=%s distance=%d",
                cell.row,
                cell.col,
                cell.champion_name,
                chosen.name,
                distance,
            )

        cell.diagnostics["disambiguated"] = {
            "short_name": cell.champion_name,
            "name": chosen.name,
            "distance": distance,
        }
        cell.champion_name = chosen.name
        cell.champion_id = chosen.id
    return settled
