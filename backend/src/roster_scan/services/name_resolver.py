from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable

from rapidfuzz import fuzz, process

from .champion_corpus import ChampionCorpus, ChampionCorpusEntry
from .grid_estimator import GridCell
from .roster_config import NAME_MATCH_THRESHOLD, OCR_CHAR_SUBSTITUTIONS

logger = logging.getLogger("roster_scan.names")

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_SUBSTITUTION_TABLE = str.maketrans(OCR_CHAR_SUBSTITUTIONS)


def normalize_name(text: str) -> str:
    """Fold case and common OCR confusions so both sides compare alike."""
    out = text.casefold()
    out = out.translate(_SUBSTITUTION_TABLE)
    return _NON_ALNUM.sub("", out)


@dataclass(frozen=True)
class NameMatch:
    entry: ChampionCorpusEntry
    score: float
    matched_on: str


class NameResolver:
    def __init__(
        self,
        corpus: ChampionCorpus,
        threshold: float = NAME_MATCH_THRESHOLD,
    ) -> None:
        self._threshold = threshold
        self._choices: list[str] = []
        self._owners: list[tuple[ChampionCorpusEntry, str]] = []
        for entry in corpus.entries:
            for field_name, value in (("name", entry.name), ("short_name", entry.short_name)):
                key = normalize_name(value)
                if not key:
                    continue
                self._choices.append(key)
                self._owners.append((entry, field_name))

    def match(self, text: str) -> NameMatch | None:
        query = normalize_name(text)
        if not query or not self._choices:
            return None
        found = process.extractOne(
            query,
            self._choices,
            scorer=fuzz.ratio,
            processor=None,
            score_cutoff=self._threshold,
        )
        if found is None:
            return None
        _, score, index = found
        entry, matched_on = self._owners[index]
        return NameMatch(entry=entry, score=float(score), matched_on=matched_on)

    def resolve_cells(self, cells: Iterable[GridCell]) -> int:
        resolved = 0
        for cell in cells:
            if not cell.text or not cell.text.strip():
                continue
            found = self.match(cell.text)
            if found is None:
                cell.champion_name = None
                cell.champion_id = None
                cell.diagnostics["name_match"] = {"text": cell.text, "score": None}
                logger.debug("no champion match row=%d col=%d text=%r", cell.row, cell.col, cell.text)
                continue
            cell.champion_name = found.entry.short_name
            cell.champion_id = found.entry.id
            cell.diagnostics["name_match"] = {
                "text": cell.text,
                "best": found.entry.name,
                "score": round(found.score, 2),
                "field": found.matched_on,
            }
            resolved += 1
        return resolved
