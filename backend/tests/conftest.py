from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterator

import pytest


BACKEND_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = BACKEND_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from roster_scan.services.champion_corpus import (  # type: ignore[import-not-found]  # noqa: E402
    ChampionClass,
    ChampionCorpus,
    ChampionCorpusEntry,
)
from roster_scan.services.roster_store import SqliteRosterStore  # type: ignore[import-not-found]  # noqa: E402


def _entries() -> list[ChampionCorpusEntry]:
    return [
        ChampionCorpusEntry(1, "Doctor Doom", "DrDoom", ChampionClass.MYSTIC),
        ChampionCorpusEntry(2, "Spider-Man (Classic)", "Spider-Man", ChampionClass.SCIENCE),
        ChampionCorpusEntry(3, "Spider-Man (Stark Enhanced)", "Spider-Man", ChampionClass.TECH),
        ChampionCorpusEntry(4, "Wolverine", "Wolverine", ChampionClass.MUTANT),
        ChampionCorpusEntry(5, "Black Widow", "Widow", ChampionClass.SKILL),
    ]


@pytest.fixture
def corpus() -> ChampionCorpus:
    return ChampionCorpus.from_entries(_entries())


@pytest.fixture
def store() -> Iterator[SqliteRosterStore]:
    db = SqliteRosterStore(":memory:")
    db.upsert_champions(_entries())
    yield db
    db.close()
