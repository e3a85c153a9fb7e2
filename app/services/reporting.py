from typing import List

from app.models.report import EntityResult, ImportReport

RULE = "=" * 60
THIN_RULE = "-" * 60

def format_entity_summary(result: EntityResult) -> List[str]:
    lines = [
        f"{result.entity} ({result.source_file} -> {result.table}):",
        f"  Imported: {result.imported}",
        f"  Skipped:  {result.skipped}",
        f"  Failed:   {result.failed}",
        f"  Total:    {result.total}",
    ]
    if result.source_missing:
        lines.append(f"  Missing:  {result.fatal_error}")
    elif result.fatal_error:
        lines.append(f"  Aborted:  {result.fatal_error}")
    return lines

def format_report(report: ImportReport, show_rows: bool = False) -> str:
    """
    Human-readable console report: one block per entity, then the grand total.
    """
    lines = [RULE, "IMPORT SUMMARY" + (" (DRY RUN)" if report.dry_run else ""), RULE]

    for result in report.entities:
        lines.append("")
        lines.extend(format_entity_summary(result))
        if show_rows:
            for error in result.errors:
                lines.append(f"    [{error.outcome}] {error.describe()}")

    totals = report.totals
    lines += [
        "",
        THIN_RULE,
        "TOTAL:",
        f"  Imported: {totals.imported}",
        f"  Skipped:  {totals.skipped}",
        f"  Failed:   {totals.failed}",
        RULE,
    ]

    if report.dry_run:
        lines.append("This was a DRY RUN. No data was written. Run without --dry-run to import.")

    return "\n".join(lines)

def print_report(report: ImportReport, show_rows: bool = False) -> None:
    print(format_report(report, show_rows=show_rows))
