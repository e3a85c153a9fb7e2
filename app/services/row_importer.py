import logging
from typing import Any, Dict, Optional, Set, Tuple

from sqlalchemy import and_, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.database import Base
from app.db import models  # noqa: F401
from app.models.errors import RowSkipped, SourceFileError, SourceFileMissing
from app.models.import_schema import EntityConfig
from app.models.report import (
    EntityResult,
    MISSING_UNIQUE_KEY,
    FOREIGN_KEY_NOT_FOUND,
    ALREADY_EXISTS,
)
from app.services import csv_loader, validator
from app.services.fk_resolver import ForeignKeyResolver
from app.services.row_mapper import map_row, missing_unique_key, transform_row

logger = logging.getLogger(__name__)

class RowImporter:
    """
    Imports one entity's CSV file row by row:
    map -> transform -> resolve foreign keys -> duplicate check -> insert.
    Rows are committed one at a time so an interrupted run can simply be re-run.
    """

    def __init__(
        self,
        config: EntityConfig,
        session: Session,
        resolver: ForeignKeyResolver,
        dry_run: bool = False,
    ):
        self.config = config
        self.session = session
        self.resolver = resolver
        self.dry_run = dry_run
        self.table = Base.metadata.tables[config.table]
        # Unique keys accepted earlier in this run (covers dry runs, where nothing is written)
        self.seen_keys: Set[Tuple[Any, ...]] = set()

    def run(self, source_dir: Optional[str] = None) -> EntityResult:
        result = EntityResult(
            entity=self.config.name,
            source_file=self.config.source_file,
            table=self.config.table,
        )

        try:
            path = csv_loader.get_source_path(self.config, source_dir)
            validator.validate_csv_header(path, self.config)
            verbatim = self.config.credential_source_columns()
            for row_number, raw_row in csv_loader.iter_rows(path, keep_whitespace=verbatim):
                self._process_row(row_number, raw_row, result)
        except SourceFileMissing as e:
            result.fatal_error = str(e)
            result.source_missing = True
            logger.warning("%s: %s, skipping", self.config.name, e)
        except SourceFileError as e:
            result.fatal_error = str(e)
            logger.error("%s: %s", self.config.name, e)

        return result

    def _process_row(self, row_number: int, raw_row: Dict[str, str], result: EntityResult) -> None:
        name = self.config.name
        try:
            row = self._prepare_row(raw_row)
            key = self._unique_key(row)
            self._check_not_existing(key)

            if self.dry_run:
                logger.info("%s row %d: [DRY RUN] would insert %s into '%s'", name, row_number, key, self.config.table)
                self.resolver.remember(self.config.table, row)
            else:
                self.session.execute(insert(self.table).values(**row))
                self.session.commit()
                logger.debug("%s row %d: imported %s", name, row_number, key)

            self.seen_keys.add(key)
            result.imported += 1

        except RowSkipped as skip:
            error = result.skip(row_number, skip.reason, skip.detail)
            log = logger.info if skip.reason == ALREADY_EXISTS else logger.warning
            log("%s row %d: skipped, %s", name, row_number, error.detail or error.reason)

        except ValueError as e:
            self.session.rollback()
            result.fail(row_number, "invalid value", str(e))
            logger.error("%s row %d: %s", name, row_number, e)

        except SQLAlchemyError as e:
            self.session.rollback()
            detail = str(getattr(e, "orig", None) or e).strip()
            result.fail(row_number, "database error", detail)
            logger.error("%s row %d: database error: %s", name, row_number, detail)

        except Exception as e:
            # A single bad row must not abort the file
            self.session.rollback()
            result.fail(row_number, "unexpected error", f"{type(e).__name__}: {e}")
            logger.exception("%s row %d: unexpected error", name, row_number)

    def _prepare_row(self, raw_row: Dict[str, str]) -> Dict[str, Any]:
        # 1. Map columns; the unique key must be present
        row = map_row(raw_row, self.config)
        missing = missing_unique_key(row, self.config)
        if missing:
            raise RowSkipped(MISSING_UNIQUE_KEY, f"no value for {', '.join(missing)}")

        # 2. Type coercion, password hashing, derived fields
        row = transform_row(row, self.config)

        # 3. Natural keys -> referenced ids
        for fk in self.config.foreign_keys:
            natural_key = row.get(fk.column)
            if natural_key is None:
                if fk.required:
                    raise RowSkipped(FOREIGN_KEY_NOT_FOUND, f"{fk.display_name()} missing")
                continue
            resolved = self.resolver.resolve(fk, natural_key)
            if resolved is None:
                raise RowSkipped(FOREIGN_KEY_NOT_FOUND, f"{fk.display_name()} not found: {natural_key}")
            row[fk.column] = resolved

        return row

    def _unique_key(self, row: Dict[str, Any]) -> Tuple[Any, ...]:
        return tuple(row[k] for k in self.config.unique_key)

    def _check_not_existing(self, key: Tuple[Any, ...]) -> None:
        """
        4. Duplicate suppression against the database and against earlier rows of this run.
        """
        described = ", ".join(f"{k}={v}" for k, v in zip(self.config.unique_key, key))

        if key in self.seen_keys:
            raise RowSkipped(ALREADY_EXISTS, f"{described} (duplicate row in file)")

        conditions = [self.table.c[col] == value for col, value in zip(self.config.unique_key, key)]
        stmt = select(self.table.c[self.config.unique_key[0]]).where(and_(*conditions)).limit(1)
        if self.session.execute(stmt).first() is not None:
            raise RowSkipped(ALREADY_EXISTS, described)


def import_entity(
    config: EntityConfig,
    session: Session,
    resolver: ForeignKeyResolver,
    source_dir: Optional[str] = None,
    dry_run: bool = False,
) -> EntityResult:
    return RowImporter(config, session, resolver, dry_run=dry_run).run(source_dir)
