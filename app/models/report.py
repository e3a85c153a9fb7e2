from typing import List, Optional, Literal
from pydantic import BaseModel, Field

RowOutcome = Literal["skipped", "failed"]

# Skip reasons
MISSING_UNIQUE_KEY = "missing unique key"
FOREIGN_KEY_NOT_FOUND = "foreign key not found"
ALREADY_EXISTS = "already exists"

class RowError(BaseModel):
    entity: str
    row_number: int               # 1-based data row (the header is not counted)
    outcome: RowOutcome
    reason: str
    detail: Optional[str] = None

    def describe(self) -> str:
        text = f"Row {self.row_number}: {self.reason}"
        return f"{text} ({self.detail})" if self.detail else text

class EntityResult(BaseModel):
    entity: str
    source_file: str
    table: str
    imported: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[RowError] = Field(default_factory=list)
    fatal_error: Optional[str] = None  # entity-level failure, no rows processed after it
    source_missing: bool = False       # fatal_error is "file not found": skipped, not failed

    @property
    def total(self) -> int:
        return self.imported + self.skipped + self.failed

    @property
    def has_failures(self) -> bool:
        return self.failed > 0 or (self.fatal_error is not None and not self.source_missing)

    def skip(self, row_number: int, reason: str, detail: Optional[str] = None) -> RowError:
        error = RowError(
            entity=self.entity, row_number=row_number, outcome="skipped", reason=reason, detail=detail
        )
        self.skipped += 1
        self.errors.append(error)
        return error

    def fail(self, row_number: int, reason: str, detail: Optional[str] = None) -> RowError:
        error = RowError(
            entity=self.entity, row_number=row_number, outcome="failed", reason=reason, detail=detail
        )
        self.failed += 1
        self.errors.append(error)
        return error

class ImportTotals(BaseModel):
    imported: int = 0
    skipped: int = 0
    failed: int = 0
    total: int = 0

class ImportReport(BaseModel):
    dry_run: bool = False
    entity_filter: Optional[str] = None
    entities: List[EntityResult] = Field(default_factory=list)

    @property
    def totals(self) -> ImportTotals:
        return ImportTotals(
            imported=sum(e.imported for e in self.entities),
            skipped=sum(e.skipped for e in self.entities),
            failed=sum(e.failed for e in self.entities),
            total=sum(e.total for e in self.entities),
        )

    @property
    def has_failures(self) -> bool:
        return any(e.has_failures for e in self.entities)

    def result_for(self, entity: str) -> Optional[EntityResult]:
        return next((e for e in self.entities if e.entity == entity), None)

    def to_dict(self) -> dict:
        """Machine-readable form, including the computed totals."""
        data = self.model_dump()
        data["totals"] = self.totals.model_dump()
        data["has_failures"] = self.has_failures
        for entity_data, entity in zip(data["entities"], self.entities):
            entity_data["total"] = entity.total
        return data

class ImportRequest(BaseModel):
    dry_run: bool = False
    table: Optional[str] = None

class EntitySummary(BaseModel):
    name: str
    source_file: str
    table: str
    unique_key: List[str]
    depends_on: List[str] = Field(default_factory=list)
    description: Optional[str] = None

class SavedRun(BaseModel):
    id: str
    started_at: str
    dry_run: bool
    entity_filter: Optional[str] = None
    has_failures: bool
    report: dict

class SavedRunList(BaseModel):
    items: List[SavedRun]

class ConfigValidationResult(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
