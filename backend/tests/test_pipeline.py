from __future__ import annotations

import numpy as np
import pytest

from roster_scan.services.ambiguity import PortraitIndex  # type: ignore[import-not-found]
from roster_scan.services.champion_corpus import ChampionCorpus  # type: ignore[import-not-found]
from roster_scan.services.detections import RawDetection  # type: ignore[import-not-found]
from roster_scan.services.errors import (  # type: ignore[import-not-found]
    DetectionProviderError,
    NoTextDetectedError,
)
from roster_scan.services.image_source import encode_png  # type: ignore[import-not-found]
from roster_scan.services.pipeline import (  # type: ignore[import-not-found]
    NO_TEXT_MESSAGE,
    DebugResult,
    PersistResult,
    RecognitionContext,
    process_roster_screenshot,
)
from roster_scan.services.roster_store import ScanMode, SqliteRosterStore  # type: ignore[import-not-found]
from roster_scan.services.visual_attributes import ClassHueProfile  # type: ignore[import-not-found]


class _FakeDetector:
    def __init__(self, detections: list[RawDetection] | None = None, error: Exception | None = None) -> None:
        self.detections = detections or []
        self.error = error
        self.calls = 0

    def detect(self, image_bytes: bytes) -> list[RawDetection]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.detections)


def _det(text: str, x: float, y: float, w: float, h: float) -> RawDetection:
    return RawDetection(text=text, polygon=((x, y), (x + w, y), (x + w, y + h), (x, y + h)), confidence=0.95)


def _screenshot() -> bytes:
    # Five slots with 100px pitch; name labels centered at y=128.
    image = np.full((400, 700, 3), 30, dtype=np.uint8)
    for col in range(5):
        left = 100 * col
        image[110:126, left + 14 : left + 85] = 255
    image[40:60, 36:66] = (0, 0, 255)
    return encode_png(image)


def _detections() -> list[RawDetection]:
    return [
        _det("MASTERIES", 250, 5, 120, 20),
        _det("Dr", 22, 121, 18, 14),
        _det("Doom", 44, 121, 34, 14),
        _det("12,345", 30, 140, 40, 12),
        _det("Wolverine", 120, 121, 60, 14),
        _det("Spider-Man", 220, 121, 60, 14),
        _det("Black Widow", 320, 121, 60, 14),
        _det("Xqzzv", 420, 121, 60, 14),
    ]


def _context(corpus: ChampionCorpus, detector: _FakeDetector) -> RecognitionContext:
    return RecognitionContext(
        corpus=corpus,
        hue_profile=ClassHueProfile.from_hues({}),
        portrait_index=PortraitIndex.empty(),
        detector=detector,
    )


def test_production_persists_resolved_cells(corpus: ChampionCorpus, store: SqliteRosterStore) -> None:
    context = _context(corpus, _FakeDetector(_detections()))

    result = process_roster_screenshot(
        _screenshot(),
        context,
        store=store,
        player_id="p1",
        mode=ScanMode.ROSTER,
        stars=6,
        rank=3,
    )

    assert isinstance(result, PersistResult)
    assert result.resolved_count == 4
    assert len(result.persisted_records) == 4
    assert len(result.skipped) == 1
    assert "Xqzzv" in result.skipped[0]
    records = {r.champion_id: r for r in store.list_roster("p1")}
    assert sorted(records) == [1, 2, 4, 5]
    assert all(r.stars == 6 and r.rank == 3 for r in records.values())
    assert records[1].is_awakened
    assert records[1].power_rating == 12345
    assert not records[4].is_awakened


def test_debug_lists_same_champions_without_writing(corpus: ChampionCorpus, store: SqliteRosterStore) -> None:
    context = _context(corpus, _FakeDetector(_detections()))

    result = process_roster_screenshot(_screenshot(), context, store=store, player_id="p1", debug=True)

    assert isinstance(result, DebugResult)
    assert result.entries == [
        "- ★ DrDoom 6* (12345)",
        "- ☆ Wolverine 6*",
        "- ☆ Spider-Man (Classic) 6*",
        "- ☆ Widow 6*",
    ]
    assert result.debug_image is not None
    assert result.debug_image.startswith(b"\x89PNG")
    assert store.list_roster("p1") == []


def test_no_text_in_debug_mode_returns_message(corpus: ChampionCorpus) -> None:
    result = process_roster_screenshot(_screenshot(), _context(corpus, _FakeDetector([])), debug=True)

    assert isinstance(result, DebugResult)
    assert result.message == NO_TEXT_MESSAGE
    assert result.entries == []


def test_no_text_in_production_raises(corpus: ChampionCorpus, store: SqliteRosterStore) -> None:
    context = _context(corpus, _FakeDetector([]))

    with pytest.raises(NoTextDetectedError, match="clearer screenshot"):
        process_roster_screenshot(_screenshot(), context, store=store, player_id="p1", stars=6, rank=3)


def test_missing_player_is_a_caller_error(corpus: ChampionCorpus, store: SqliteRosterStore) -> None:
    detector = _FakeDetector(_detections())

    with pytest.raises(ValueError):
        process_roster_screenshot(_screenshot(), _context(corpus, detector), store=store, stars=6, rank=3)
    assert detector.calls == 0


def test_provider_failure_ends_the_run(corpus: ChampionCorpus, store: SqliteRosterStore) -> None:
    detector = _FakeDetector(error=DetectionProviderError("provider unreachable"))

    with pytest.raises(DetectionProviderError):
        process_roster_screenshot(_screenshot(), _context(corpus, detector), store=store, player_id="p1")
    assert detector.calls == 1
    assert store.list_roster("p1") == []


def test_text_without_names_counts_as_no_content(corpus: ChampionCorpus, store: SqliteRosterStore) -> None:
    chrome = [_det("MASTERIES", 250, 5, 120, 20), _det("   ", 40, 120, 30, 14), _det("12,345", 30, 140, 40, 12)]
    context = _context(corpus, _FakeDetector(chrome))

    with pytest.raises(NoTextDetectedError, match="clearer screenshot"):
        process_roster_screenshot(_screenshot(), context, store=store, player_id="p1", stars=6, rank=3)

    result = process_roster_screenshot(_screenshot(), context, debug=True)
    assert isinstance(result, DebugResult)
    assert result.message == NO_TEXT_MESSAGE
    assert store.list_roster("p1") == []
