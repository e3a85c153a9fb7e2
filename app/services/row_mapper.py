from typing import Any, Dict, Optional

from app.models.import_schema import EntityConfig, FieldTransform, DERIVATIONS
from app.services import validator
from app.services.password_hasher import ensure_hashed

def map_row(raw_row: Dict[str, Optional[str]], config: EntityConfig) -> Dict[str, str]:
    """
    Renames source columns to destination columns.
    Empty or absent cells are left out entirely rather than written as NULL,
    so a re-import never blanks a value that is already stored.
    """
    mapped: Dict[str, str] = {}
    for csv_col, dest_col in config.column_map.items():
        value = raw_row.get(csv_col)
        if value is None or value == "":
            continue
        mapped[dest_col] = value
    return mapped

def missing_unique_key(row: Dict[str, Any], config: EntityConfig) -> list:
    return [key for key in config.unique_key if row.get(key) in (None, "")]

def coerce_value(transform: FieldTransform, raw: Any, column: str) -> Any:
    """
    Converts one raw string into the destination type.
    Raises ValueError when the value cannot be converted.
    """
    if transform == "string":
        return raw
    if transform == "lowercase":
        return str(raw).lower()
    if transform == "password":
        return ensure_hashed(raw)

    parsers = {
        "integer": validator.parse_int,
        "decimal": validator.parse_decimal,
        "boolean": validator.parse_bool,
        "date": validator.parse_date,
        "datetime": validator.parse_datetime,
    }
    value = parsers[transform](raw)
    if value is None:
        raise ValueError(f"invalid {transform} value '{raw}' for '{column}'")
    return value

def transform_row(mapped_row: Dict[str, Any], config: EntityConfig) -> Dict[str, Any]:
    """
    Applies the configured field transforms (type coercion, password hashing),
    then fills derived fields the source did not provide.
    """
    transformed = dict(mapped_row)

    for column, transform in config.field_transforms.items():
        if column not in transformed:
            continue
        transformed[column] = coerce_value(transform, transformed[column], column)

    for column, derivation in config.derived_fields.items():
        if transformed.get(column) is not None:
            continue
        value = DERIVATIONS[derivation](transformed)
        if value is not None:
            transformed[column] = value

    return transformed
