from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping

from .errors import CorpusDataError

logger = logging.getLogger("roster_scan.corpus")


class ChampionClass(str, enum.Enum):
    COSMIC = "COSMIC"
    TECH = "TECH"
    MUTANT = "MUTANT"
    SKILL = "SKILL"
    SCIENCE = "SCIENCE"
    MYSTIC = "MYSTIC"
    SUPERIOR = "SUPERIOR"


def parse_champion_class(value: object) -> ChampionClass | None:
    text = str(value or "").strip().upper()
    try:
        return ChampionClass(text)
    except ValueError:
        return None


@dataclass(frozen=True)
class ChampionCorpusEntry:
    id: int
    name: str
    short_name: str
    champion_class: ChampionClass | None = None


@dataclass(frozen=True)
class ChampionCorpus:
    """Immutable champion reference set shared by every pipeline run."""

    entries: tuple[ChampionCorpusEntry, ...]
    _by_id: Mapping[int, ChampionCorpusEntry] = field(init=False, repr=False, compare=False)
    _ambiguous: Mapping[str, tuple[ChampionCorpusEntry, ...]] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        by_id = {entry.id: entry for entry in self.entries}
        by_short: dict[str, list[ChampionCorpusEntry]] = {}
        for entry in self.entries:
            by_short.setdefault(entry.short_name, []).append(entry)
        ambiguous = {
            short: tuple(group) for short, group in by_short.items() if len(group) > 1
        }
        object.__setattr__(self, "_by_id", by_id)
        object.__setattr__(self, "_ambiguous", ambiguous)

    @classmethod
    def from_entries(cls, entries: Iterable[ChampionCorpusEntry]) -> ChampionCorpus:
        corpus = cls(entries=tuple(entries))
        logger.info(
            "champion corpus ready entries=%d ambiguous_short_names=%d",
            len(corpus.entries),
            len(corpus.ambiguous_short_names),
        )
        return corpus

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, champion_id: int) -> ChampionCorpusEntry | None:
        return self._by_id.get(champion_id)

    @property
    def ambiguous_short_names(self) -> frozenset[str]:
        return frozenset(self._ambiguous)

    def variants(self, short_name: str) -> tuple[ChampionCorpusEntry, ...]:
        return self._ambiguous.get(short_name, ())


def _entry_from_item(item: object) -> ChampionCorpusEntry | None:
    if not isinstance(item, dict):
        return None
    try:
        champion_id = int(item["id"])
    except (KeyError, TypeError, ValueError):
        return None
    name = str(item.get("name") or "").strip()
    short_name = str(item.get("shortName") or item.get("short_name") or "").strip()
    if not name:
        return None
    return ChampionCorpusEntry(
        id=champion_id,
        name=name,
        short_name=short_name or name,
        champion_class=parse_champion_class(item.get("class") or item.get("championClass")),
    )


def load_champion_entries(path: Path) -> list[ChampionCorpusEntry]:
    """Read ``[{"id", "name", "shortName", "class"}, ...]`` from a JSON file."""
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise CorpusDataError(f"failed to read champion data {path}: {exc}") from exc

    items = payload.get("champions") if isinstance(payload, dict) else payload
    if not isinstance(items, list):
        raise CorpusDataError(f"champion data {path} must be a list")

    entries: list[ChampionCorpusEntry] = []
    for item in items:
        entry = _entry_from_item(item)
        if entry is None:
            logger.warning("skipping malformed champion item=%r", item)
            continue
        entries.append(entry)
    return entries
