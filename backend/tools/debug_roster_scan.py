from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = BACKEND_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from roster_scan.services.ambiguity import PortraitIndex  # noqa: E402
from roster_scan.services.champion_corpus import (  # noqa: E402
    ChampionCorpus,
    load_champion_entries,
)
from roster_scan.services.errors import RosterScanError  # noqa: E402
from roster_scan.services.grid_estimator import GridCell  # noqa: E402
from roster_scan.services.pipeline import (  # noqa: E402
    DebugResult,
    RecognitionContext,
    process_roster_screenshot,
)
from roster_scan.services.roster_store import SqliteRosterStore  # noqa: E402
from roster_scan.services.text_detection import LocalOcrDetector  # noqa: E402
from roster_scan.services.visual_attributes import ClassHueProfile  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run roster recognition in debug mode and dump the overlay and cell diagnostics."
    )
    parser.add_argument("image", type=Path, help="Path to roster screenshot")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=BACKEND_DIR / ".cache" / "roster_debug",
        help="Directory for debug outputs",
    )
    parser.add_argument("--champions", type=Path, help="Champion JSON list (id, name, shortName, class)")
    parser.add_argument("--db", type=Path, help="Roster database to read champions from")
    parser.add_argument(
        "--class-icon-dir",
        type=Path,
        default=BACKEND_DIR / "static" / "class_icons",
    )
    parser.add_argument(
        "--portrait-dir",
        type=Path,
        default=BACKEND_DIR / "static" / "portraits",
    )
    return parser.parse_args()


def _load_corpus(args: argparse.Namespace) -> ChampionCorpus:
    if args.champions is not None:
        return ChampionCorpus.from_entries(load_champion_entries(args.champions))
    if args.db is not None:
        store = SqliteRosterStore(args.db)
        try:
            return store.load_corpus()
        finally:
            store.close()
    raise SystemExit("either --champions or --db is required")


def _cell_dump(cell: GridCell) -> dict[str, object]:
    data = asdict(cell)
    data["champion_class"] = cell.champion_class.value if cell.champion_class else None
    return data


def main() -> None:
    args = parse_args()
    image_path = args.image.resolve()
    output_dir = args.output_dir.resolve()

    if not image_path.exists():
        raise FileNotFoundError(f"image not found: {image_path}")

    corpus = _load_corpus(args)
    hue_profile = (
        ClassHueProfile.from_icon_dir(args.class_icon_dir)
        if args.class_icon_dir.is_dir()
        else ClassHueProfile.from_icon_images({})
    )
    portrait_index = (
        PortraitIndex.from_image_dir(args.portrait_dir, corpus)
        if args.portrait_dir.is_dir()
        else PortraitIndex.empty()
    )
    context = RecognitionContext(
        corpus=corpus,
        hue_profile=hue_profile,
        portrait_index=portrait_index,
        detector=LocalOcrDetector(),
    )

    result = process_roster_screenshot(image_path.read_bytes(), context, debug=True)
    if not isinstance(result, DebugResult):
        raise RuntimeError("debug run returned a persist result")

    output_dir.mkdir(parents=True, exist_ok=True)
    if result.debug_image:
        (output_dir / "debug_overlay.png").write_bytes(result.debug_image)
    cells_path = output_dir / "cells.json"
    cells_path.write_text(
        json.dumps([_cell_dump(cell) for cell in result.cells], ensure_ascii=False, indent=2, default=str),
        encoding="utf-8",
    )

    print("[Message]", result.message)
    print("[Resolved champions]")
    for line in result.entries:
        print(line)

    print("[Unresolved cells]")
    for cell in result.cells:
        if cell.text and cell.champion_name is None:
            print(f"- row={cell.row + 1} col={cell.col + 1} text={cell.text!r}")

    print("[Output files]", output_dir)


if __name__ == "__main__":
    try:
        main()
    except RosterScanError as exc:
        print(f"[ERROR] {exc}")
        raise SystemExit(1) from exc
