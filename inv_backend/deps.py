"""
Dependency injection - builds services.
Simple, debug-friendly DI without framework magic.
"""

from pathlib import Path
from typing import Optional

from .adapters.db.schema import migrate_schema
from .adapters.db.sqlite import Sqlite
from .adapters.tools import FFProbe
from .config import (
    DB_TIMEOUT,
    FFPROBE_BIN,
    FFPROBE_TIMEOUT,
    GENERATOR_MAX_WORKERS,
    INDEX_DB,
    MATERIALIZE_ROOT_PATH,
    PREVIEW_ROOT_PATH,
    PREVIEW_WORK_ROOT_PATH,
    initialize_directories,
)
from .features.catalog import CatalogStore
from .features.previews import (
    FilenameReferenceResolver,
    HueService,
    MaterializationCache,
    PreviewClassifier,
    PreviewGenerator,
    PreviewRenderer,
    PreviewService,
)
from .features.previews.generator import RenderFn
from .shared import Result, get_logger, log_success

logger = get_logger(__name__)


def _init_db_or_error(db_path: str) -> Result[Sqlite]:
    logger.info("Initializing database: %s", db_path)
    try:
        return Result.Ok(Sqlite(db_path, timeout=DB_TIMEOUT))
    except Exception as exc:
        logger.error("Failed to initialize database: %s", exc)
        return Result.Err("DB_ERROR", f"Failed to initialize database: {exc}")


async def _migrate_db_or_error(db: Sqlite) -> Result[bool]:
    migrate_result = await migrate_schema(db)
    if not migrate_result.ok:
        logger.error("Schema migration failed: %s", migrate_result.error)
        return Result.Err(migrate_result.code or "DB_ERROR", f"Failed to initialize database: {migrate_result.error}")
    return Result.Ok(True)


def _log_tool_availability(ffprobe: FFProbe) -> None:
    if ffprobe.is_available():
        log_success(logger, "ffprobe is available")
    else:
        logger.warning("ffprobe not found - audio durations will only be read from wav files")


async def build_services(
    db_path: Optional[str] = None,
    *,
    data_root: Optional[Path] = None,
    render_fn: Optional[RenderFn] = None,
    **service_options,
) -> Result[dict]:
    """
    Build all services.

    Args:
        db_path: Catalog database path (defaults to `INDEX_DB`)
        data_root: Put previews, extractions and scratch copies under this
            folder instead of the configured locations
        render_fn: Replaces the default Pillow renderer of the generator
        **service_options: Extra `PreviewService`/scheduler options

    Returns:
        Result with dict of services
    """
    if data_root is None:
        initialize_directories()
        preview_root, materialize_root, work_root = PREVIEW_ROOT_PATH, MATERIALIZE_ROOT_PATH, PREVIEW_WORK_ROOT_PATH
    else:
        data_root = Path(data_root)
        preview_root, materialize_root, work_root = (
            data_root / "Previews",
            data_root / "Extracted",
            data_root / "PreviewWork",
        )
        for path in (preview_root, materialize_root):
            path.mkdir(parents=True, exist_ok=True)

    db_res = _init_db_or_error(db_path if db_path is not None else INDEX_DB)
    if not db_res.ok:
        return Result.Err(db_res.code, db_res.error or "Failed to initialize database")
    db = db_res.data

    migrated = await _migrate_db_or_error(db)
    if not migrated.ok:
        await db.aclose()
        return Result.Err(migrated.code, migrated.error or "Schema migration failed")

    ffprobe = FFProbe(bin_name=FFPROBE_BIN or "ffprobe", timeout=FFPROBE_TIMEOUT)
    _log_tool_availability(ffprobe)

    store = CatalogStore(db)
    cache = MaterializationCache(materialize_root)
    renderer = PreviewRenderer(ffprobe=ffprobe)
    generator = PreviewGenerator(render_fn or renderer.render, max_workers=GENERATOR_MAX_WORKERS)
    classifier = PreviewClassifier()
    previews = PreviewService(
        store,
        cache,
        generator,
        classifier,
        dependency_resolver=FilenameReferenceResolver(store),
        preview_root=preview_root,
        work_root=work_root,
        **service_options,
    )

    services = {
        "db": db,
        "ffprobe": ffprobe,
        "store": store,
        "cache": cache,
        "renderer": renderer,
        "generator": generator,
        "classifier": classifier,
        "previews": previews,
        "hue": HueService(store, preview_root=preview_root),
    }
    log_success(logger, "Services initialized")
    return Result.Ok(services)
