import logging
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.database import Base
from app.db import models  # noqa: F401
from app.models.import_schema import ForeignKeyRef

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str, str]

class ForeignKeyResolver:
    """
    Translates natural keys (e.g. participant emails) into the values stored in
    referencing columns (e.g. participant ids), with one cache per referenced
    table/column pair. Built once per run and passed to every entity import.
    """

    def __init__(self, session: Session):
        self.session = session
        self._caches: Dict[CacheKey, Dict[Any, Any]] = {}
        self.lookups = 0
        # Dry-run stand-in ids are negative so they never match a real row
        self._next_pending_id = -1

    @staticmethod
    def _cache_key(ref: ForeignKeyRef) -> CacheKey:
        return (ref.table, ref.match_column, ref.value_column)

    def _cache(self, ref: ForeignKeyRef) -> Dict[Any, Any]:
        return self._caches.setdefault(self._cache_key(ref), {})

    def prewarm(self, ref: ForeignKeyRef) -> int:
        """
        Loads every (natural key, value) pair of the referenced table in one query.
        Returns the number of cached entries.
        """
        table = Base.metadata.tables[ref.table]
        stmt = select(table.c[ref.match_column], table.c[ref.value_column])
        cache = self._cache(ref)
        for natural_key, value in self.session.execute(stmt):
            if natural_key is not None:
                cache[natural_key] = value
        logger.info("Cached %d %s keys from %s", len(cache), ref.display_name(), ref.table)
        return len(cache)

    def resolve(self, ref: ForeignKeyRef, natural_key: Any) -> Optional[Any]:
        """
        Returns the referenced value, or None if no row matches.
        Misses are not cached: a later row in the same run may insert the key.
        """
        if natural_key is None or natural_key == "":
            return None

        cache = self._cache(ref)
        if natural_key in cache:
            return cache[natural_key]

        table = Base.metadata.tables[ref.table]
        stmt = select(table.c[ref.value_column]).where(table.c[ref.match_column] == natural_key).limit(1)
        self.lookups += 1
        found = self.session.execute(stmt).first()
        if found is None:
            return None

        cache[natural_key] = found[0]
        return found[0]

    def remember(self, table: str, row: Dict[str, Any]) -> None:
        """
        Records a row that a dry run would have inserted, so later entities in
        the same dry run can resolve references to it.
        """
        for (cached_table, match_column, value_column), cache in self._caches.items():
            if cached_table != table or row.get(match_column) is None:
                continue
            if row[match_column] in cache:
                continue
            value = row.get(value_column)
            if value is None:
                value = self._next_pending_id
                self._next_pending_id -= 1
            cache[row[match_column]] = value

    def register(self, ref: ForeignKeyRef) -> None:
        self._cache(ref)
