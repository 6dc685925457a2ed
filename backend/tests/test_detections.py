from __future__ import annotations

from roster_scan.services.detections import (  # type: ignore[import-not-found]
    RawDetection,
    normalize_detections,
    parse_power_rating,
    parse_rank,
    parse_sig_level,
)


def _det(text: str, x: float, y: float, w: float, h: float, conf: float | None = 0.9) -> RawDetection:
    return RawDetection(
        text=text,
        polygon=((x, y), (x + w, y), (x + w, y + h), (x, y + h)),
        confidence=conf,
    )


def test_same_line_tokens_merge_left_to_right() -> None:
    clusters = normalize_detections([_det("Doom", 44, 121, 34, 14), _det("Dr", 22, 121, 18, 14)])

    assert len(clusters) == 1
    assert clusters[0].text == "Dr Doom"
    assert clusters[0].token_count == 2
    assert clusters[0].bounds.x == 22
    assert clusters[0].bounds.right == 78


def test_distant_tokens_on_same_line_stay_apart() -> None:
    clusters = normalize_detections([_det("Wolverine", 20, 121, 60, 14), _det("Widow", 120, 121, 60, 14)])

    assert [c.text for c in clusters] == ["Wolverine", "Widow"]


def test_wrapped_name_merges_across_lines() -> None:
    clusters = normalize_detections([_det("Black", 30, 100, 40, 12), _det("Widow", 28, 114, 44, 12)])

    assert len(clusters) == 1
    assert clusters[0].text == "Black Widow"
    assert clusters[0].bounds.bottom == 126


def test_power_rating_is_not_merged_into_name() -> None:
    clusters = normalize_detections([_det("Wolverine", 20, 100, 60, 12), _det("12,345", 30, 114, 40, 12)])

    assert [c.text for c in clusters] == ["Wolverine", "12,345"]


def test_aggregate_annotation_and_blank_tokens_dropped() -> None:
    detections = [
        _det("Dr Doom\nWolverine", 0, 0, 300, 200, conf=None),
        _det("Dr", 22, 121, 18, 14),
        _det("   ", 60, 160, 20, 14),
        _det("Wolverine", 120, 121, 60, 14),
    ]

    clusters = normalize_detections(detections)

    assert [c.text for c in clusters] == ["Dr", "Wolverine"]


def test_mean_confidence_of_merged_tokens() -> None:
    clusters = normalize_detections([_det("Dr", 22, 121, 18, 14, 0.8), _det("Doom", 44, 121, 34, 14, 0.6)])

    assert abs(clusters[0].confidence - 0.7) < 1e-9


def test_empty_input() -> None:
    assert normalize_detections([]) == []


def test_stat_text_parsers() -> None:
    assert parse_power_rating("12,345") == 12345
    assert parse_power_rating("9.876") == 9876
    assert parse_power_rating("300") is None
    assert parse_power_rating("Rank 3") is None
    assert parse_rank("Rank 3") == 3
    assert parse_rank("RANK5") == 5
    assert parse_rank("Wolverine") is None
    assert parse_sig_level("Sig 200") == 200
    assert parse_sig_level("sig. 20") == 20
