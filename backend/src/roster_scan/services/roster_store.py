from __future__ import annotations

import enum
import logging
import sqlite3
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Protocol

from .champion_corpus import ChampionCorpus, ChampionCorpusEntry, parse_champion_class
from .errors import RosterStoreError
from .grid_estimator import GridCell
from .roster_config import MAX_STARS, MIN_STARS

logger = logging.getLogger("roster_scan.store")


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS champions (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    short_name TEXT NOT NULL,
    champion_class TEXT
);

CREATE INDEX IF NOT EXISTS idx_champions_name ON champions(name);
CREATE INDEX IF NOT EXISTS idx_champions_short_name ON champions(short_name);

CREATE TABLE IF NOT EXISTS roster (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    player_id TEXT NOT NULL,
    champion_id INTEGER NOT NULL,
    stars INTEGER NOT NULL,
    rank INTEGER NOT NULL,
    is_awakened INTEGER NOT NULL DEFAULT 0,
    sig_level INTEGER,
    is_ascended INTEGER NOT NULL DEFAULT 0,
    power_rating INTEGER,
    UNIQUE (player_id, champion_id, stars),
    FOREIGN KEY (champion_id) REFERENCES champions(id)
);
"""

_UPSERT_SQL = """
INSERT INTO roster (
    player_id, champion_id, stars, rank, is_awakened, sig_level, is_ascended, power_rating
) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (player_id, champion_id, stars) DO UPDATE SET
    rank = excluded.rank,
    is_awakened = excluded.is_awakened,
    sig_level = excluded.sig_level,
    is_ascended = excluded.is_ascended,
    power_rating = excluded.power_rating
"""

_SELECT_RECORD_SQL = """
SELECT player_id, champion_id, stars, rank, is_awakened, sig_level, is_ascended, power_rating
FROM roster
"""


class ScanMode(str, enum.Enum):
    ROSTER = "roster"
    STATS = "stats"


@dataclass(frozen=True)
class RosterRecord:
    player_id: str
    champion_id: int
    stars: int
    rank: int
    is_awakened: bool = False
    sig_level: int | None = None
    is_ascended: bool = False
    power_rating: int | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> RosterRecord:
        return cls(
            player_id=str(row["player_id"]),
            champion_id=int(row["champion_id"]),
            stars=int(row["stars"]),
            rank=int(row["rank"]),
            is_awakened=bool(row["is_awakened"]),
            sig_level=row["sig_level"],
            is_ascended=bool(row["is_ascended"]),
            power_rating=row["power_rating"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "playerId": self.player_id,
            "championId": self.champion_id,
            "stars": self.stars,
            "rank": self.rank,
            "isAwakened": self.is_awakened,
            "sigLevel": self.sig_level,
            "isAscended": self.is_ascended,
            "powerRating": self.power_rating,
        }


class RosterStore(Protocol):
    def find_champion_id(self, name: str) -> int | None:
        ...

    def upsert(
        self,
        player_id: str,
        champion_id: int,
        stars: int,
        rank: int,
        is_awakened: bool,
        sig_level: int | None,
        is_ascended: bool,
        power_rating: int | None,
    ) -> RosterRecord:
        ...


class SqliteRosterStore:
    """Champion reference table plus per-player roster records."""

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self.ensure_schema()

    def ensure_schema(self) -> None:
        with self._lock, self._conn:
            self._conn.executescript(SCHEMA_SQL)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _execute(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        try:
            with self._lock, self._conn:
                return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise RosterStoreError(f"roster store query failed: {exc}") from exc

    def upsert_champions(self, entries: Iterable[ChampionCorpusEntry]) -> int:
        rows = [
            (
                entry.id,
                entry.name,
                entry.short_name,
                entry.champion_class.value if entry.champion_class else None,
            )
            for entry in entries
        ]
        try:
            with self._lock, self._conn:
                self._conn.executemany(
                    """
                    INSERT INTO champions (id, name, short_name, champion_class)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT (id) DO UPDATE SET
                        name = excluded.name,
                        short_name = excluded.short_name,
                        champion_class = excluded.champion_class
                    """,
                    rows,
                )
        except sqlite3.Error as exc:
            raise RosterStoreError(f"failed to store champions: {exc}") from exc
        logger.info("champions stored count=%d", len(rows))
        return len(rows)

    def load_corpus(self) -> ChampionCorpus:
        rows = self._execute(
            "SELECT id, name, short_name, champion_class FROM champions ORDER BY id"
        )
        return ChampionCorpus.from_entries(
            ChampionCorpusEntry(
                id=int(row["id"]),
                name=str(row["name"]),
                short_name=str(row["short_name"]),
                champion_class=parse_champion_class(row["champion_class"]),
            )
            for row in rows
        )

    def find_champion_id(self, name: str) -> int | None:
        rows = self._execute("SELECT id FROM champions WHERE name = ? ORDER BY id LIMIT 1", (name,))
        if not rows:
            rows = self._execute(
                "SELECT id FROM champions WHERE short_name = ? ORDER BY id LIMIT 1", (name,)
            )
        return int(rows[0]["id"]) if rows else None

    def upsert(
        self,
        player_id: str,
        champion_id: int,
        stars: int,
        rank: int,
        is_awakened: bool,
        sig_level: int | None,
        is_ascended: bool,
        power_rating: int | None,
    ) -> RosterRecord:
        params = (
            player_id,
            champion_id,
            stars,
            rank,
            int(is_awakened),
            sig_level,
            int(is_ascended),
            power_rating,
        )
        try:
            with self._lock, self._conn:
                self._conn.execute(_UPSERT_SQL, params)
                row = self._conn.execute(
                    _SELECT_RECORD_SQL + " WHERE player_id = ? AND champion_id = ? AND stars = ?",
                    (player_id, champion_id, stars),
                ).fetchone()
        except sqlite3.Error as exc:
            raise RosterStoreError(
                f"upsert failed player={player_id} champion={champion_id} stars={stars}: {exc}"
            ) from exc
        return RosterRecord.from_row(row)

    def list_roster(self, player_id: str) -> list[RosterRecord]:
        rows = self._execute(
            _SELECT_RECORD_SQL + " WHERE player_id = ? ORDER BY champion_id, stars",
            (player_id,),
        )
        return [RosterRecord.from_row(row) for row in rows]


@dataclass
class ReconcileResult:
    records: list[RosterRecord] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def _cell_label(cell: GridCell) -> str:
    return f"{cell.champion_name} (row {cell.row + 1}, col {cell.col + 1})"


def reconcile_roster(
    cells: Iterable[GridCell],
    store: RosterStore,
    player_id: str,
    *,
    mode: ScanMode = ScanMode.ROSTER,
    stars: int | None = None,
    rank: int | None = None,
    is_ascended: bool | None = None,
) -> ReconcileResult:
    """Write one record per distinct (champion, star tier) found in the cells.

    Roster mode takes star tier, rank and ascension from the caller, using the
    classified star tier and ascension of a cell when the caller gives none.
    Stats mode reads them from each cell and falls back to the caller's values.
    Cells sharing a (champion, star tier) pair collapse to the last one seen. A failing
    cell is reported in ``skipped`` and the rest still commit.
    """
    result = ReconcileResult()
    pending: dict[tuple[int, int], dict[str, Any]] = {}

    for cell in cells:
        if cell.champion_name is None:
            continue
        label = _cell_label(cell)

        if mode is ScanMode.STATS:
            cell_stars = cell.stars if cell.stars is not None else stars
            cell_rank = cell.rank if cell.rank is not None else rank
            cell_ascended = cell.is_ascended or bool(is_ascended)
            cell_awakened = cell.is_awakened or bool(cell.sig_level) or cell_ascended
        else:
            cell_stars = stars if stars is not None else cell.stars
            cell_rank = rank
            cell_ascended = is_ascended if is_ascended is not None else cell.is_ascended
            cell_awakened = cell.is_awakened

        if cell_stars is None or not MIN_STARS <= cell_stars <= MAX_STARS:
            result.skipped.append(f"{label}: star tier undetermined")
            continue
        if cell_rank is None:
            result.skipped.append(f"{label}: rank missing")
            continue

        try:
            champion_id = store.find_champion_id(cell.champion_name)
        except RosterStoreError as exc:
            logger.warning("champion lookup failed name=%s error=%s", cell.champion_name, exc)
            result.skipped.append(f"{label}: {exc}")
            continue
        if champion_id is None:
            result.skipped.append(f"{label}: champion not found")
            continue

        pending[(champion_id, cell_stars)] = {
            "label": label,
            "rank": cell_rank,
            "is_awakened": cell_awakened,
            "sig_level": cell.sig_level,
            "is_ascended": cell_ascended,
            "power_rating": cell.power_rating,
        }

    for (champion_id, cell_stars), values in pending.items():
        try:
            record = store.upsert(
                player_id,
                champion_id,
                cell_stars,
                values["rank"],
                values["is_awakened"],
                values["sig_level"],
                values["is_ascended"],
                values["power_rating"],
            )
        except RosterStoreError as exc:
            logger.warning("roster upsert failed %s error=%s", values["label"], exc)
            result.skipped.append(f"{values['label']}: {exc}")
            continue
        result.records.append(record)

    logger.info(
        "roster reconciled player=%s mode=%s persisted=%d skipped=%d",
        player_id,
        mode.value,
        len(result.records),
        len(result.skipped),
    )
    return result
