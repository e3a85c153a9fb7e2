import pytest
from decimal import Decimal
from unittest.mock import MagicMock, patch
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.db.models import ProgramEnrollment, Registration
from app.models.errors import DatabaseUnavailableError, ImportConfigError
from app.models.import_schema import IMPORT_SCHEMA, get_entity_config
from app.services import orchestrator
from app.services.orchestrator import prepare_configs, refs_to_prewarm, run_import

# --- Fixtures ---

@pytest.fixture
def small_dataset(make_csv):
    """
    Goal: A consistent set of CSVs for every entity except donations and milestones.
    """
    make_csv("participants_table_v3.csv",
             ["ParticipantEmail", "ParticipantFirstName", "ParticipantRole", "ParticipantPassword"],
             [["a@x.com", "Ana", "participant", "pw1"], ["b@x.com", "Bea", "Admin", "pw2"]],
             bom=True)
    make_csv("event_template_table.csv",
             ["event_name", "event_type", "event_default_capacity"],
             [["STEAM Night", "Workshop", "30"]])
    make_csv("event_occurance_table.csv",
             ["event_occurrence_id", "event_name", "event_date_time_start", "event_location"],
             [["1", "STEAM Night", "2025-03-15 18:00:00", "Provo"]])
    make_csv("attendance_table.csv",
             ["AttendanceID", "RegistrationStatus", "RegistrationAttendedFlag"],
             [["1", "Attended", "true"]])
    make_csv("registration_table.csv",
             ["ParticipantEmail", "EventOccurrenceID", "AttendanceID",
              "SurveySatisfactionScore", "SurveyUsefulnessScore",
              "SurveyInstructorScore", "SurveyRecommendationScore"],
             [["a@x.com", "1", "1", "5", "5", "4", "5"],
              ["b@x.com", "1", "", "", "", "", ""]])
    make_csv("programs_table.csv",
             ["ProgramTitle", "ProgramFee"],
             [["Robotics", "$25"]])
    make_csv("program_enrollments_table.csv",
             ["ParticipantEmail", "ProgramTitle", "EnrollmentStatus"],
             [["a@x.com", "Robotics", "Active"], ["a@x.com", "Ballet", "Active"]])

# --- Tests for prepare_configs ---

def test_prepare_configs_orders_by_dependency():
    """
    Goal: Even a reversed import table runs referenced entities first.
    """
    ordered = [c.name for c in prepare_configs(list(reversed(IMPORT_SCHEMA)))]

    assert ordered.index("participants") < ordered.index("registrations")
    assert ordered.index("event_templates") < ordered.index("event_occurrences")
    assert ordered.index("event_occurrences") < ordered.index("registrations")
    assert ordered.index("attendance") < ordered.index("registrations")
    assert ordered.index("programs") < ordered.index("program_enrollments")

def test_prepare_configs_filter():
    selected = prepare_configs(entity_filter="donations")
    assert [c.name for c in selected] == ["donations"]

def test_prepare_configs_unknown_filter():
    with pytest.raises(ImportConfigError, match="Unknown entity 'volunteers'"):
        prepare_configs(entity_filter="volunteers")

def test_prepare_configs_invalid_table():
    bad = get_entity_config("programs").model_copy(update={"table": "courses"})
    with pytest.raises(ImportConfigError, match="unknown table 'courses'"):
        prepare_configs([bad])

# --- Tests for refs_to_prewarm ---

def test_refs_to_prewarm_picks_shared_references():
    """
    Goal: Only participants (referenced by several entities) are bulk-loaded.
    """
    refs = refs_to_prewarm(IMPORT_SCHEMA, IMPORT_SCHEMA)

    assert [(r.table, r.match_column) for r in refs] == [("participants", "participant_email")]

def test_refs_to_prewarm_only_for_selected():
    programs_only = [get_entity_config("programs")]
    assert refs_to_prewarm(IMPORT_SCHEMA, programs_only) == []

# --- Tests for run_import ---

def test_run_import_full(small_dataset, csv_dir, session_factory, db_session):
    """
    Goal: A full run imports every available file and keeps going past missing ones.
    """
    # 1. Action
    report = run_import(source_dir=str(csv_dir), session_factory=session_factory)

    # 2. Check: each entity has a result, in dependency order
    names = [e.entity for e in report.entities]
    assert names.index("participants") < names.index("registrations")
    assert report.result_for("participants").imported == 2
    assert report.result_for("registrations").imported == 2

    # 3. Check: missing files skip their entity without failing the run
    assert "File not found" in report.result_for("donations").fatal_error
    assert report.result_for("donations").source_missing is True
    assert report.result_for("milestones").source_missing is True
    assert report.has_failures is False

    # 4. Check: unknown program skipped, known one enrolled
    enrollments = report.result_for("program_enrollments")
    assert (enrollments.imported, enrollments.skipped) == (1, 1)
    assert enrollments.errors[0].detail == "program not found: Ballet"
    assert db_session.execute(select(ProgramEnrollment)).scalar_one().status == "active"

    # 5. Check: survey fields derived on the way in
    registrations = db_session.execute(
        select(Registration).order_by(Registration.registration_id)
    ).scalars().all()
    assert registrations[0].survey_overall_score == Decimal("4.75")
    assert registrations[0].survey_nps_bucket == "Promoter"
    assert registrations[1].survey_nps_bucket is None
    assert registrations[1].attendance_id is None

    assert report.totals.imported == 2 + 1 + 1 + 1 + 2 + 1 + 1

def test_run_import_is_idempotent(small_dataset, csv_dir, session_factory):
    run_import(source_dir=str(csv_dir), session_factory=session_factory)

    report = run_import(source_dir=str(csv_dir), session_factory=session_factory)

    assert report.totals.imported == 0
    assert report.totals.failed == 0

def test_run_import_with_filter(small_dataset, csv_dir, session_factory):
    report = run_import(entity_filter="participants", source_dir=str(csv_dir), session_factory=session_factory)

    assert [e.entity for e in report.entities] == ["participants"]
    assert report.entity_filter == "participants"
    assert report.has_failures is False

def test_run_import_dry_run(small_dataset, csv_dir, session_factory, db_session):
    """
    Goal: Dry runs resolve references across entities yet write nothing.
    """
    report = run_import(dry_run=True, source_dir=str(csv_dir), session_factory=session_factory)

    assert report.dry_run is True
    assert report.result_for("registrations").imported == 2
    assert report.result_for("program_enrollments").imported == 1
    assert db_session.execute(select(Registration)).first() is None

def test_run_import_unknown_filter_touches_nothing():
    """
    Goal: Configuration errors are raised before a session is opened.
    """
    session_factory = MagicMock()

    with pytest.raises(ImportConfigError):
        run_import(entity_filter="volunteers", session_factory=session_factory)

    session_factory.assert_not_called()

def test_run_import_database_unreachable(csv_dir):
    """
    Goal: A failed connectivity check aborts the run and still closes the session.
    """
    # 1. Setup: a session whose first query fails
    session = MagicMock()
    session.execute.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))

    # 2. Action & Check
    with pytest.raises(DatabaseUnavailableError, match="connection refused"):
        run_import(source_dir=str(csv_dir), session_factory=lambda: session)

    session.close.assert_called_once()

def test_run_import_continues_past_unreadable_file(small_dataset, csv_dir, session_factory):
    """
    Goal: A directory sitting where a CSV should be aborts only that entity.
    """
    # 1. Setup: programs_table.csv is a directory, not a file
    (csv_dir / "programs_table.csv").unlink()
    (csv_dir / "programs_table.csv").mkdir()

    # 2. Action
    report = run_import(source_dir=str(csv_dir), session_factory=session_factory)

    # 3. Check: programs aborted, later entities still processed
    programs = report.result_for("programs")
    assert "Cannot read" in programs.fatal_error
    assert programs.source_missing is False

    enrollments = report.result_for("program_enrollments")
    assert enrollments.fatal_error is None
    assert (enrollments.imported, enrollments.skipped) == (0, 2)
    assert report.result_for("registrations").imported == 2
    assert report.has_failures is True

def test_run_import_contains_unexpected_entity_error(small_dataset, csv_dir, session_factory):
    """
    Goal: An unexpected exception inside one entity is recorded and the run moves on.
    """
    real_import_entity = orchestrator.import_entity

    def fail_on_programs(config, *args, **kwargs):
        if config.name == "programs":
            raise RuntimeError("boom")
        return real_import_entity(config, *args, **kwargs)

    with patch("app.services.orchestrator.import_entity", side_effect=fail_on_programs):
        report = run_import(source_dir=str(csv_dir), session_factory=session_factory)

    assert report.result_for("programs").fatal_error == "RuntimeError: boom"
    assert report.result_for("program_enrollments") is not None
    assert report.result_for("participants").imported == 2
    assert report.has_failures is True
