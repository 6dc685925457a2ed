from __future__ import annotations

import base64

from roster_scan.main import scan_result_payload  # type: ignore[import-not-found]
from roster_scan.services.pipeline import DebugResult, PersistResult  # type: ignore[import-not-found]
from roster_scan.services.roster_store import RosterRecord  # type: ignore[import-not-found]


def test_persist_payload_uses_camel_case_records() -> None:
    result = PersistResult(
        resolved_count=1,
        persisted_records=[RosterRecord("p1", 4, 6, 3, True, 20, False, 12345)],
        skipped=["unrecognized text 'Xqzzv' (row 1, col 5)"],
    )

    payload = scan_result_payload(result)

    assert payload["ok"] is True
    assert payload["debug"] is False
    assert payload["resolvedCount"] == 1
    assert payload["records"] == [
        {
            "playerId": "p1",
            "championId": 4,
            "stars": 6,
            "rank": 3,
            "isAwakened": True,
            "sigLevel": 20,
            "isAscended": False,
            "powerRating": 12345,
        }
    ]
    assert payload["skipped"] == result.skipped


def test_debug_payload_encodes_overlay() -> None:
    payload = scan_result_payload(DebugResult(message="ok", entries=["- ☆ Wolverine 6*"], debug_image=b"png"))

    assert payload["debug"] is True
    assert payload["entries"] == ["- ☆ Wolverine 6*"]
    assert base64.b64decode(payload["debugImage"]) == b"png"


def test_debug_payload_without_overlay() -> None:
    assert scan_result_payload(DebugResult(message="none"))["debugImage"] is None
