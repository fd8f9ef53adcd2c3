"""
Memory Lane Backend — Schema Manager
=====================================

What:  Brings the database schema to the current revision at startup and
       verifies it can serve traffic.
How:   1. `alembic upgrade head` through Alembic's connection-sharing recipe,
          on a connection from the application's own engine.
       2. Integrity checks, each isolated so one failing check cannot stop
          startup:
          - memories table present            (missing → SchemaError, fatal)
          - expected columns present          (missing → logged)
          - memory_images table present       (missing → logged)
          - has_image flags match the store   (mismatch → logged, optional repair)
Who:   main.py lifespan, before the app accepts requests.

Migrations are idempotent: they inspect the live schema before creating or
dropping anything, so a database created before migrations existed (no
alembic_version table) is adopted in place.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Set

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect, select, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from memorylane.exceptions import SchemaError
from memorylane.models.memory import Memory
from memorylane.services.image_store import ImageStore

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"

CORE_TABLE = "memories"
IMAGE_TABLE = "memory_images"

EXPECTED_COLUMNS: Dict[str, Set[str]] = {
    CORE_TABLE: {
        "id", "title", "content", "date", "mood", "tags",
        "has_image", "image_data", "image_mime_type",
    },
    IMAGE_TABLE: {"memory_id", "data", "mime_type", "created_at"},
}


@dataclass
class SchemaReport:
    """Outcome of the startup checks, mostly for logging and tests."""

    tables: Set[str] = field(default_factory=set)
    missing_columns: Dict[str, List[str]] = field(default_factory=dict)
    flagged_without_image: List[str] = field(default_factory=list)
    image_without_flag: List[str] = field(default_factory=list)
    repaired: bool = False
    failed_checks: List[str] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return not (
            self.missing_columns
            or self.flagged_without_image
            or self.image_without_flag
            or self.failed_checks
        )


def alembic_config() -> Config:
    """Alembic config pointing at the packaged migration scripts (no .ini needed)."""
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    return cfg


class SchemaManager:
    """Runs migrations and integrity checks against one engine."""

    def __init__(self, engine: AsyncEngine, image_store: ImageStore, repair_image_flags: bool = False):
        self.engine = engine
        self.image_store = image_store
        self.repair_image_flags = repair_image_flags

    async def upgrade(self, revision: str = "head") -> None:
        """Apply pending migrations. Any failure here is fatal."""
        logger.info("Applying database migrations (target=%s)", revision)

        def _run(connection) -> None:
            cfg = alembic_config()
            cfg.attributes["connection"] = connection
            command.upgrade(cfg, revision)

        async with self.engine.begin() as conn:
            await conn.run_sync(_run)
        logger.info("Database migrations complete")

    async def verify(self) -> SchemaReport:
        """
        Run the integrity checks.

        Raises:
            SchemaError: the memories table does not exist.
        """
        report = SchemaReport()

        async with self.engine.connect() as conn:
            columns = await conn.run_sync(self._inspect_columns)
        report.tables = set(columns)

        if CORE_TABLE not in columns:
            logger.critical("Required table '%s' is missing", CORE_TABLE)
            raise SchemaError(
                message=f"Required table '{CORE_TABLE}' does not exist",
                context={"tables": sorted(columns)},
            )

        for table, expected in EXPECTED_COLUMNS.items():
            if table not in columns:
                logger.error("Table '%s' is missing; image storage may fail", table)
                report.missing_columns[table] = sorted(expected)
                continue
            missing = sorted(expected - columns[table])
            if missing:
                logger.error("Table '%s' is missing columns: %s", table, ", ".join(missing))
                report.missing_columns[table] = missing

        flags_checkable = CORE_TABLE not in report.missing_columns and not (
            self.image_store.name == "database" and IMAGE_TABLE in report.missing_columns
        )
        if flags_checkable:
            try:
                await self._check_image_flags(report)
            except Exception as e:
                logger.error("Image flag integrity check failed: %s", str(e), exc_info=True)
                report.failed_checks.append("image_flags")

        if report.healthy:
            logger.info("Schema integrity checks passed")
        return report

    async def run(self, migrate: bool = True) -> SchemaReport:
        if migrate:
            await self.upgrade()
        return await self.verify()

    @staticmethod
    def _inspect_columns(sync_conn) -> Dict[str, Set[str]]:
        inspector = inspect(sync_conn)
        return {
            table: {col["name"] for col in inspector.get_columns(table)}
            for table in inspector.get_table_names()
        }

    async def _check_image_flags(self, report: SchemaReport) -> None:
        """
        Compare memories.has_image with what the image store actually holds.

        Entries adopted from the disk-path era are flagged by migration 003
        without their bytes being imported, so this check is expected to
        report them until they are re-uploaded or repaired.
        """
        async with AsyncSession(self.engine, expire_on_commit=False) as session:
            result = await session.execute(select(Memory.id).where(Memory.has_image.is_(True)))
            flagged = set(result.scalars().all())
            stored = await self.image_store.asset_ids(session)

            result = await session.execute(select(Memory.id))
            existing = set(result.scalars().all())
            stored &= existing

            flagged_without_image = flagged - stored
            image_without_flag = stored - flagged
            report.flagged_without_image = sorted(str(i) for i in flagged_without_image)
            report.image_without_flag = sorted(str(i) for i in image_without_flag)

            if flagged_without_image:
                logger.warning(
                    "%d memories have has_image=true but no stored image",
                    len(flagged_without_image),
                )
            if image_without_flag:
                logger.warning(
                    "%d memories have a stored image but has_image=false",
                    len(image_without_flag),
                )

            if self.repair_image_flags and (flagged_without_image or image_without_flag):
                if flagged_without_image:
                    await session.execute(
                        update(Memory)
                        .where(Memory.id.in_(list(flagged_without_image)))
                        .values(has_image=False)
                    )
                if image_without_flag:
                    await session.execute(
                        update(Memory)
                        .where(Memory.id.in_(list(image_without_flag)))
                        .values(has_image=True)
                    )
                await session.commit()
                report.repaired = True
                logger.info("Repaired has_image flags to match the %s store", self.image_store.name)
