from typing import List, Optional, Any
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import logging
import pandas as pd
from datetime import datetime, date

from app.db.database import Base
from app.db import models  # noqa: F401  (registers tables on Base.metadata)
from app.models.errors import ImportConfigError, SourceFileError
from app.models.import_schema import EntityConfig, DERIVATIONS
from app.models.report import ConfigValidationResult

logger = logging.getLogger(__name__)

# Parsing helpers for dates, datetimes, booleans, numbers
DATE_FORMATS = [
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%d-%m-%Y",
]
DATETIME_FORMATS = [
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%y %H:%M",
]
CENTS = Decimal("0.01")

def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return bool(pd.isna(value))

def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Public helper to parse datetimes. Falls back to date-only values (midnight).
    Returns None if parsing fails or value is empty.
    """
    if _is_empty(value):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    value_str = str(value).strip()

    for fmt in DATETIME_FORMATS:
        try:
            return datetime.strptime(value_str, fmt)
        except ValueError:
            continue

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value_str, fmt)
        except ValueError:
            continue

    # Last resort: ISO 8601 with offsets or fractions ("2025-03-15T18:00:00.000Z")
    try:
        parsed = datetime.fromisoformat(value_str.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed.replace(tzinfo=None) if parsed.tzinfo else parsed

def parse_date(value: Any) -> Optional[date]:
    """
    Public helper to parse dates from various string formats.
    A datetime string is accepted and truncated to its date.
    """
    if _is_empty(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    parsed = parse_datetime(value)
    return parsed.date() if parsed else None

def parse_bool(value: Any) -> Optional[bool]:
    """
    Public helper to parse boolean values.
    """
    if _is_empty(value):
        return None
    if isinstance(value, bool):
        return value

    s = str(value).lower().strip()
    if s in ("true", "1", "t", "yes", "y", "on"):
        return True
    if s in ("false", "0", "f", "no", "n", "off"):
        return False
    return None

def parse_decimal(value: Any) -> Optional[Decimal]:
    """
    Parses currency-like strings ("$1,250.50", "75", " 20.5 ") to a Decimal rounded to cents.
    """
    if _is_empty(value):
        return None

    s = str(value).strip().replace("$", "").replace(",", "").replace(" ", "")
    try:
        parsed = Decimal(s)
    except InvalidOperation:
        return None
    if not parsed.is_finite():
        return None
    return parsed.quantize(CENTS, rounding=ROUND_HALF_UP)

def parse_int(value: Any) -> Optional[int]:
    """
    Parses integers, accepting integral decimals such as "12.0" (spreadsheet exports).
    """
    if _is_empty(value):
        return None
    if isinstance(value, bool):
        return None

    s = str(value).strip().replace(",", "")
    try:
        parsed = Decimal(s)
    except InvalidOperation:
        return None
    if not parsed.is_finite() or parsed != parsed.to_integral_value():
        return None
    return int(parsed)


# CONFIG VALIDATION
#----------------------------------------------------------------
def dependency_order(configs: List[EntityConfig]) -> List[EntityConfig]:
    """
    Orders entity configs so every entity comes after the entities it references.
    Keeps the declared order wherever dependencies allow it.
    References to entities outside `configs` are treated as already loaded.
    """
    names = {c.name for c in configs}
    remaining = list(configs)
    ordered: List[EntityConfig] = []
    placed = set()

    while remaining:
        ready = next(
            (c for c in remaining if all(d in placed or d not in names for d in c.dependencies())),
            None,
        )
        if ready is None:
            cycle = ", ".join(c.name for c in remaining)
            raise ImportConfigError(f"Circular foreign-key dependencies between: {cycle}")
        ordered.append(ready)
        placed.add(ready.name)
        remaining.remove(ready)

    return ordered

def validate_import_schema(configs: List[EntityConfig]) -> ConfigValidationResult:
    """
    Checks the declarative import table before any file is opened.
    """
    errors: List[str] = []
    tables = Base.metadata.tables
    config_names = [c.name for c in configs]

    # 1. Entity names must be unique (they are used for --table filtering)
    duplicates = sorted({n for n in config_names if config_names.count(n) > 1})
    for name in duplicates:
        errors.append(f"Entity '{name}' is configured more than once.")

    for config in configs:
        prefix = f"Entity '{config.name}'"

        # 2. Destination table must exist in the ORM schema
        table = tables.get(config.table)
        if table is None:
            errors.append(f"{prefix} targets unknown table '{config.table}'.")
            continue
        table_columns = set(table.columns.keys())
        destinations = set(config.destination_columns())

        for dest in destinations:
            if dest not in table_columns:
                errors.append(f"{prefix} maps to missing column '{config.table}.{dest}'.")

        # 3. The unique key must be fed by the source file
        if not config.unique_key:
            errors.append(f"{prefix} has no unique key.")
        for key in config.unique_key:
            if key not in config.column_map.values():
                errors.append(f"{prefix} unique key column '{key}' is not mapped from any source column.")

        # 4. Transforms and derived fields must target known destination columns
        for dest in config.field_transforms:
            if dest not in destinations:
                errors.append(f"{prefix} has a transform for unmapped column '{dest}'.")

        for dest, derivation in config.derived_fields.items():
            if derivation not in DERIVATIONS:
                errors.append(f"{prefix} uses unknown derivation '{derivation}' for '{dest}'.")

        # 5. Foreign keys must point at real columns
        for fk in config.foreign_keys:
            if fk.column not in config.column_map.values():
                errors.append(f"{prefix} foreign key column '{fk.column}' is not mapped.")
            ref_table = tables.get(fk.table)
            if ref_table is None:
                errors.append(f"{prefix} references unknown table '{fk.table}'.")
                continue
            for col in (fk.match_column, fk.value_column):
                if col not in ref_table.columns.keys():
                    errors.append(f"{prefix} references missing column '{fk.table}.{col}'.")

    # 6. Dependencies must be acyclic
    if not duplicates:
        try:
            dependency_order(configs)
        except ImportConfigError as e:
            errors.append(str(e))

    return ConfigValidationResult(is_valid=len(errors) == 0, errors=errors)

def validate_csv_header(file_path: str, config: EntityConfig) -> List[str]:
    """
    Reads only the header row and compares it to the configured source columns.
    Returns the source columns that are missing (their cells are simply omitted).
    Raises SourceFileError when the file has no header or lacks a unique-key column.
    """
    try:
        # 'utf-8-sig' strips a leading byte-order-mark from the first header
        df = pd.read_csv(file_path, nrows=0, dtype=str, encoding="utf-8-sig")
    except pd.errors.EmptyDataError as e:
        raise SourceFileError(f"{file_path} has no header row") from e
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        raise SourceFileError(f"Failed to read CSV header of {file_path}: {e}") from e
    except OSError as e:
        raise SourceFileError(f"Cannot read {file_path}: {e}") from e

    header = {str(c).strip().lstrip("\ufeff") for c in df.columns}
    missing = [src for src in config.column_map if src not in header]

    for key in config.unique_key:
        src = config.source_column_for(key)
        if src in missing:
            raise SourceFileError(
                f"{file_path} is missing unique-key column '{src}' required by '{config.name}'"
            )

    if missing:
        logger.warning("%s: source columns not present, values omitted: %s", config.name, ", ".join(missing))

    return missing
