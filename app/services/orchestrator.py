import logging
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Set

from sqlalchemy.orm import Session

from app.db.database import SessionLocal, check_connection, reset_sequences
from app.models.errors import ImportConfigError
from app.models.import_schema import EntityConfig, ForeignKeyRef, IMPORT_SCHEMA
from app.models.report import EntityResult, ImportReport
from app.services import validator
from app.services.fk_resolver import ForeignKeyResolver
from app.services.row_importer import import_entity

logger = logging.getLogger(__name__)

def prepare_configs(
    configs: Optional[List[EntityConfig]] = None,
    entity_filter: Optional[str] = None,
) -> List[EntityConfig]:
    """
    Validates the import table and returns the entities to run, in dependency order.
    Raises ImportConfigError before anything touches the database.
    """
    configs = IMPORT_SCHEMA if configs is None else configs

    result = validator.validate_import_schema(configs)
    if not result.is_valid:
        raise ImportConfigError("Invalid import configuration: " + "; ".join(result.errors))

    ordered = validator.dependency_order(configs)
    if entity_filter:
        selected = [c for c in ordered if c.name == entity_filter]
        if not selected:
            names = ", ".join(c.name for c in ordered)
            raise ImportConfigError(f"Unknown entity '{entity_filter}'. Expected one of: {names}")
        return selected
    return ordered

def refs_to_prewarm(all_configs: List[EntityConfig], selected: List[EntityConfig]) -> List[ForeignKeyRef]:
    """
    Picks the references worth bulk-loading: entities referenced by more than
    one importer (participants, in practice), when a selected entity needs them.
    """
    referencing: Dict[str, Set[str]] = defaultdict(set)
    for config in all_configs:
        for fk in config.foreign_keys:
            referencing[fk.entity].add(config.name)

    refs: List[ForeignKeyRef] = []
    seen = set()
    for config in selected:
        for fk in config.foreign_keys:
            key = (fk.table, fk.match_column, fk.value_column)
            if len(referencing[fk.entity]) > 1 and key not in seen:
                seen.add(key)
                refs.append(fk)
    return refs

def run_import(
    configs: Optional[List[EntityConfig]] = None,
    dry_run: bool = False,
    entity_filter: Optional[str] = None,
    source_dir: Optional[str] = None,
    session_factory: Callable[[], Session] = SessionLocal,
) -> ImportReport:
    """
    Runs every configured entity import, one after another, in dependency order.

    Fatal (raised): invalid configuration, unknown entity filter, database unreachable.
    Entity-level problems (missing, unreadable or malformed file, or any unexpected
    error inside one entity) are recorded on that entity's result and the run
    continues with the next entity. A missing file counts as skipped, not failed.
    """
    all_configs = IMPORT_SCHEMA if configs is None else configs
    selected = prepare_configs(all_configs, entity_filter)
    report = ImportReport(dry_run=dry_run, entity_filter=entity_filter)

    session = session_factory()
    try:
        check_connection(session)
        logger.info("Database connection OK")

        resolver = ForeignKeyResolver(session)
        for config in selected:
            for fk in config.foreign_keys:
                resolver.register(fk)
        for ref in refs_to_prewarm(all_configs, selected):
            resolver.prewarm(ref)

        for config in selected:
            logger.info("Importing %s from %s into '%s'", config.name, config.source_file, config.table)
            try:
                result = import_entity(config, session, resolver, source_dir=source_dir, dry_run=dry_run)
            except Exception as e:
                # One broken entity must not stop the ones after it
                session.rollback()
                logger.exception("%s: unexpected error", config.name)
                result = EntityResult(
                    entity=config.name,
                    source_file=config.source_file,
                    table=config.table,
                    fatal_error=f"{type(e).__name__}: {e}",
                )
            report.entities.append(result)
            if result.fatal_error and not result.source_missing:
                logger.error("%s aborted: %s", config.name, result.fatal_error)
            logger.info(
                "%s: %d imported, %d skipped, %d failed",
                config.name, result.imported, result.skipped, result.failed,
            )

        if not dry_run and report.totals.imported:
            reset_sequences(session)
    finally:
        session.close()

    return report
