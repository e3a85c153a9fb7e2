from typing import Optional
from pydantic import BaseModel

class ErrorResponse(BaseModel):
    detail: str
    code: Optional[str] = None


class ImportConfigError(Exception):
    """The declarative import table (or a requested entity filter) is invalid."""


class DatabaseUnavailableError(Exception):
    """The destination database cannot be reached. Aborts the whole run."""


class SourceFileError(Exception):
    """
    A source CSV cannot be processed at all (missing file, no header row,
    unique-key column absent, malformed structure). Aborts one entity only.
    """


class SourceFileMissing(SourceFileError):
    """The entity's CSV file is absent. The entity is skipped, not failed."""


class RowSkipped(Exception):
    """
    Raised inside the row importer to stop processing one row without
    counting it as a failure.
    """

    def __init__(self, reason: str, detail: Optional[str] = None):
        super().__init__(detail or reason)
        self.reason = reason
        self.detail = detail