from __future__ import annotations

from roster_scan.services.champion_corpus import ChampionCorpus  # type: ignore[import-not-found]
from roster_scan.services.detections import Rect  # type: ignore[import-not-found]
from roster_scan.services.grid_estimator import GridCell  # type: ignore[import-not-found]
from roster_scan.services.name_resolver import NameResolver, normalize_name  # type: ignore[import-not-found]


def _cell(text: str | None, col: int = 0) -> GridCell:
    return GridCell(row=0, col=col, bounds=Rect(col * 100.0, 0.0, 93.0, 116.0), text=text)


def test_normalize_name_folds_ocr_noise() -> None:
    assert normalize_name("Dr. D00m") == "drdoom"
    assert normalize_name("W0LVER1NE") == normalize_name("Wolverine")
    assert normalize_name("  ") == ""


def test_short_name_match_from_spaced_text(corpus: ChampionCorpus) -> None:
    found = NameResolver(corpus).match("Dr Doom")

    assert found is not None
    assert found.entry.short_name == "DrDoom"
    assert found.entry.id == 1


def test_full_name_match_with_ocr_noise(corpus: ChampionCorpus) -> None:
    found = NameResolver(corpus).match("Blaek W1dow")

    assert found is not None
    assert found.entry.id == 5
    assert found.score >= 75


def test_garbage_below_threshold(corpus: ChampionCorpus) -> None:
    assert NameResolver(corpus).match("Xqzzv") is None
    assert NameResolver(corpus).match("") is None


def test_resolve_cells_sets_short_name_and_id(corpus: ChampionCorpus) -> None:
    cells = [_cell("Dr Doom", 0), _cell("Xqzzv", 1), _cell(None, 2), _cell("Wolverine", 3)]

    resolved = NameResolver(corpus).resolve_cells(cells)

    assert resolved == 2
    assert [c.champion_name for c in cells] == ["DrDoom", None, None, "Wolverine"]
    assert [c.champion_id for c in cells] == [1, None, None, 4]
    assert cells[1].diagnostics["name_match"]["score"] is None
    assert "name_match" not in cells[2].diagnostics


def test_same_champion_may_resolve_twice(corpus: ChampionCorpus) -> None:
    cells = [_cell("Wolverine", 0), _cell("Wolverlne", 1)]

    NameResolver(corpus).resolve_cells(cells)

    assert cells[0].champion_id == cells[1].champion_id == 4
