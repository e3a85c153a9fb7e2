import csv
import logging
import os
from typing import Dict, Iterable, Iterator, Optional, Tuple

from app.core.config import settings
from app.models.errors import SourceFileError, SourceFileMissing
from app.models.import_schema import EntityConfig

logger = logging.getLogger(__name__)

BOM = "\ufeff"

def get_source_path(config: EntityConfig, source_dir: Optional[str] = None) -> str:
    path = os.path.join(source_dir or settings.CSV_DIR, config.source_file)
    if not os.path.exists(path):
        raise SourceFileMissing(f"File not found: {path}")
    return path

def _clean_header(name: Optional[str]) -> Optional[str]:
    if name is None:
        return None
    return name.strip().lstrip(BOM).strip()

def iter_rows(
    file_path: str,
    encoding: str = "utf-8-sig",
    keep_whitespace: Iterable[str] = (),
) -> Iterator[Tuple[int, Dict[str, str]]]:
    """
    Streams a headed CSV file as (row_number, row) pairs, row_number starting at 1
    for the first data row. Header names and values are stripped, except values of
    the `keep_whitespace` columns (credentials), and a leading byte-order-mark is
    removed from the header.
    Raises SourceFileError for files without a header or with broken CSV structure.
    """
    logger.debug("Reading %s", file_path)
    verbatim = set(keep_whitespace)
    try:
        with open(file_path, "r", encoding=encoding, newline="") as f:
            reader = csv.DictReader(f)
            if not reader.fieldnames:
                raise SourceFileError(f"{file_path} has no header row")
            reader.fieldnames = [_clean_header(h) for h in reader.fieldnames]

            for row_number, row in enumerate(reader, start=1):
                # Cells beyond the header land under the None key; they are ignored
                clean_row = {
                    k: v.strip() if isinstance(v, str) and k not in verbatim else v
                    for k, v in row.items()
                    if k is not None
                }
                yield row_number, clean_row
    except csv.Error as e:
        raise SourceFileError(f"Malformed CSV in {file_path}: {e}") from e
    except UnicodeDecodeError as e:
        raise SourceFileError(f"{file_path} is not valid UTF-8: {e}") from e
    except OSError as e:
        raise SourceFileError(f"Cannot read {file_path}: {e}") from e
