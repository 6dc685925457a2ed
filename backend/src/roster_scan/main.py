import asyncio
import base64
import logging
import os
import time
from pathlib import Path

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from .services.ambiguity import PortraitIndex
from .services.champion_corpus import load_champion_entries
from .services.errors import (
    CorpusDataError,
    DetectionProviderError,
    ImageSourceError,
    NoTextDetectedError,
    OcrDependencyError,
    RosterScanError,
    RosterStoreError,
)
from .services.image_source import load_image_bytes
from .services.pipeline import (
    DebugResult,
    PersistResult,
    RecognitionContext,
    ScanResult,
    process_roster_screenshot,
)
from .services.roster_store import ScanMode, SqliteRosterStore
from .services.text_detection import LocalOcrDetector
from .services.visual_attributes import ClassHueProfile

app = FastAPI(title="Roster Scan API")
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("roster_scan.main")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


BACKEND_DIR = Path(__file__).resolve().parents[2]

APP_HOST = os.getenv("HOST", "0.0.0.0")
APP_PORT = _env_int("PORT", 8000)
SCAN_MAX_UPLOAD_MB = _env_float("SCAN_MAX_UPLOAD_MB", 8.0)
SCAN_MAX_UPLOAD_BYTES = max(1, int(SCAN_MAX_UPLOAD_MB * 1024 * 1024))
SCAN_TIMEOUT_SECONDS = max(1.0, _env_float("SCAN_TIMEOUT_SECONDS", 30.0))
SCAN_MAX_CONCURRENCY = max(1, _env_int("SCAN_MAX_CONCURRENCY", 2))
IMAGE_FETCH_TIMEOUT_SECONDS = max(1.0, _env_float("IMAGE_FETCH_TIMEOUT_SECONDS", 10.0))
ROSTER_DB_PATH = os.getenv("ROSTER_DB_PATH", "") or str(BACKEND_DIR / "data" / "roster.db")
CHAMPIONS_JSON_PATH = os.getenv("CHAMPIONS_JSON_PATH", "")
CLASS_ICON_DIR = Path(os.getenv("CLASS_ICON_DIR", "") or BACKEND_DIR / "static" / "class_icons")
PORTRAIT_DIR = Path(os.getenv("PORTRAIT_DIR", "") or BACKEND_DIR / "static" / "portraits")

_scan_semaphore = asyncio.Semaphore(SCAN_MAX_CONCURRENCY)
_store: SqliteRosterStore | None = None
_context: RecognitionContext | None = None


def _scan_error(
    *,
    status_code: int,
    code: str,
    message: str,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "ok": False,
            "error": {
                "code": code,
                "message": message,
            },
        },
    )


def _parse_bool(value: object) -> bool:
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")


def _parse_optional_int(value: object, field_name: str) -> int | None:
    raw = str(value or "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"'{field_name}' must be an integer") from exc


def scan_result_payload(result: ScanResult) -> dict[str, object]:
    if isinstance(result, DebugResult):
        return {
            "ok": True,
            "debug": True,
            "message": result.message,
            "entries": result.entries,
            "debugImage": (
                base64.b64encode(result.debug_image).decode("ascii")
                if result.debug_image
                else None
            ),
        }
    if isinstance(result, PersistResult):
        return {
            "ok": True,
            "debug": False,
            "resolvedCount": result.resolved_count,
            "records": [record.to_dict() for record in result.persisted_records],
            "skipped": result.skipped,
        }
    raise TypeError(f"unexpected scan result: {type(result).__name__}")


def _build_context(store: SqliteRosterStore) -> RecognitionContext:
    corpus = store.load_corpus()
    if CLASS_ICON_DIR.is_dir():
        hue_profile = ClassHueProfile.from_icon_dir(CLASS_ICON_DIR)
    else:
        logger.warning("class icon dir missing path=%s, class detection limited", CLASS_ICON_DIR)
        hue_profile = ClassHueProfile.from_icon_images({})
    if PORTRAIT_DIR.is_dir():
        portrait_index = PortraitIndex.from_image_dir(PORTRAIT_DIR, corpus)
    else:
        logger.warning("portrait dir missing path=%s, ambiguous names keep first variant", PORTRAIT_DIR)
        portrait_index = PortraitIndex.empty()
    return RecognitionContext(
        corpus=corpus,
        hue_profile=hue_profile,
        portrait_index=portrait_index,
        detector=LocalOcrDetector(),
    )


@app.middleware("http")
async def request_log_middleware(request: Request, call_next):
    started = time.perf_counter()
    method = request.method
    path = request.url.path
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        logger.exception(
            "request failed method=%s path=%s duration_ms=%.2f",
            method,
            path,
            elapsed_ms,
        )
        raise

    elapsed_ms = (time.perf_counter() - started) * 1000.0
    logger.info(
        "request method=%s path=%s status=%s duration_ms=%.2f",
        method,
        path,
        response.status_code,
        elapsed_ms,
    )
    return response


@app.on_event("startup")
def _startup() -> None:
    global _store, _context
    logger.info(
        "startup config host=%s port=%s db=%s class_icon_dir=%s portrait_dir=%s",
        APP_HOST,
        APP_PORT,
        ROSTER_DB_PATH,
        CLASS_ICON_DIR,
        PORTRAIT_DIR,
    )
    logger.info(
        "startup config scan_max_upload_mb=%.2f scan_timeout_seconds=%.2f scan_max_concurrency=%d",
        SCAN_MAX_UPLOAD_MB,
        SCAN_TIMEOUT_SECONDS,
        SCAN_MAX_CONCURRENCY,
    )
    _store = SqliteRosterStore(ROSTER_DB_PATH)
    if CHAMPIONS_JSON_PATH:
        try:
            _store.upsert_champions(load_champion_entries(Path(CHAMPIONS_JSON_PATH)))
        except CorpusDataError:
            logger.exception("champion seed failed path=%s", CHAMPIONS_JSON_PATH)
    _context = _build_context(_store)
    logger.info("startup recognition context ready champions=%d", len(_context.corpus))


@app.on_event("shutdown")
def _shutdown() -> None:
    if _store is not None:
        _store.close()


@app.get("/health")
def health() -> dict[str, object]:
    return {"ok": True, "champions": len(_context.corpus) if _context else 0}


@app.get("/api/roster/{playerId}")
def roster(playerId: str) -> dict[str, object]:
    if _store is None:
        raise HTTPException(status_code=503, detail="roster store not ready")
    try:
        records = _store.list_roster(playerId)
    except RosterStoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {
        "playerId": playerId,
        "records": [record.to_dict() for record in records],
    }


async def _read_uploads(form: object) -> list[tuple[str, bytes]]:
    sources: list[tuple[str, bytes]] = []
    for image in form.getlist("image"):  # type: ignore[attr-defined]
        image_content_type = str(getattr(image, "content_type", "")).lower()
        if image_content_type and not image_content_type.startswith("image/"):
            raise ValueError("image file is required")
        if not hasattr(image, "read"):
            raise ValueError("image must be a file upload")
        payload = await image.read()
        if not payload:
            raise ValueError("empty image payload")
        if len(payload) > SCAN_MAX_UPLOAD_BYTES:
            raise OverflowError(f"image payload exceeds {SCAN_MAX_UPLOAD_MB:.2f} MB limit")
        sources.append((str(getattr(image, "filename", "") or "upload"), payload))
    return sources


@app.post("/api/roster/scan", response_model=None)
async def scan_roster(request: Request) -> object:
    content_type = (request.headers.get("content-type") or "").lower()
    if "multipart/form-data" not in content_type:
        return _scan_error(
            status_code=400,
            code="INVALID_CONTENT_TYPE",
            message="multipart/form-data with 'image' or 'imageUrl' fields is required",
        )
    if _context is None or _store is None:
        return _scan_error(
            status_code=503,
            code="NOT_READY",
            message="recognition context not ready",
        )

    try:
        form = await request.form()
    except Exception:  # noqa: BLE001
        logger.exception("scan form parse failed")
        return _scan_error(
            status_code=503,
            code="MULTIPART_UNAVAILABLE",
            message=(
                "multipart parser unavailable. Install dependency: "
                "pip install python-multipart"
            ),
        )

    player_id = str(form.get("playerId") or "").strip()
    debug = _parse_bool(form.get("debug"))
    raw_ascended = form.get("ascended")
    ascended = None if raw_ascended is None else _parse_bool(raw_ascended)
    try:
        mode = ScanMode(str(form.get("mode") or ScanMode.ROSTER.value).strip().lower())
        stars = _parse_optional_int(form.get("stars"), "stars")
        rank = _parse_optional_int(form.get("rank"), "rank")
    except ValueError as exc:
        return _scan_error(status_code=400, code="INVALID_FIELD", message=str(exc))

    if not debug and not player_id:
        return _scan_error(
            status_code=400,
            code="MISSING_PLAYER_ID",
            message="playerId is required unless debug is set",
        )
    if not debug and mode is ScanMode.ROSTER and (stars is None or rank is None):
        return _scan_error(
            status_code=400,
            code="MISSING_FIELD",
            message="stars and rank are required in roster mode",
        )

    try:
        sources = await _read_uploads(form)
    except OverflowError as exc:
        return _scan_error(status_code=413, code="FILE_TOO_LARGE", message=str(exc))
    except ValueError as exc:
        return _scan_error(status_code=400, code="INVALID_IMAGE", message=str(exc))
    urls = [str(url).strip() for url in form.getlist("imageUrl") if str(url).strip()]
    if not sources and not urls:
        return _scan_error(
            status_code=400,
            code="MISSING_IMAGE",
            message="image or imageUrl field is required",
        )

    results: list[dict[str, object]] = []
    items: list[tuple[str, bytes | str]] = [*sources, *((url, url) for url in urls)]
    for label, source in items:
        try:
            async with _scan_semaphore:
                image_bytes = await asyncio.to_thread(
                    load_image_bytes, source, IMAGE_FETCH_TIMEOUT_SECONDS
                )
                result = await asyncio.wait_for(
                    asyncio.to_thread(
                        process_roster_screenshot,
                        image_bytes,
                        _context,
                        store=_store,
                        player_id=player_id or None,
                        mode=mode,
                        stars=stars,
                        rank=rank,
                        is_ascended=ascended,
                        debug=debug,
                    ),
                    timeout=SCAN_TIMEOUT_SECONDS,
                )
        except (ImageSourceError, NoTextDetectedError) as exc:
            code = "IMAGE_SOURCE_ERROR" if isinstance(exc, ImageSourceError) else "NO_TEXT_DETECTED"
            results.append({"source": label, "ok": False, "error": {"code": code, "message": str(exc)}})
            continue
        except asyncio.TimeoutError:
            logger.exception("scan timed out source=%s", label)
            return _scan_error(
                status_code=504,
                code="SCAN_TIMEOUT",
                message=f"scan exceeded timeout {SCAN_TIMEOUT_SECONDS:.2f}s",
            )
        except OcrDependencyError as exc:
            logger.exception("ocr dependency unavailable")
            return _scan_error(status_code=503, code="OCR_ENGINE_UNAVAILABLE", message=str(exc))
        except DetectionProviderError as exc:
            logger.exception("text detection failed source=%s", label)
            return _scan_error(status_code=502, code="DETECTION_FAILED", message=str(exc))
        except RosterScanError as exc:
            logger.exception("scan processing failed source=%s", label)
            return _scan_error(status_code=500, code="SCAN_PROCESSING_ERROR", message=str(exc))
        except ValueError as exc:
            return _scan_error(status_code=422, code="INVALID_REQUEST", message=str(exc))
        except Exception:
            logger.exception("unexpected scan failure source=%s", label)
            return _scan_error(
                status_code=500,
                code="SCAN_UNKNOWN_ERROR",
                message="unexpected scan failure",
            )
        results.append({"source": label, **scan_result_payload(result)})

    return {"ok": True, "results": results}
