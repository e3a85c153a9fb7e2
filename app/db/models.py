from sqlalchemy import (
    Column, String, Text, Integer, Boolean, Date, DateTime, Numeric,
    ForeignKey, CheckConstraint, UniqueConstraint, DDL, event, func,
)
from app.db.database import Base

class Participant(Base):
    __tablename__ = "participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    participant_email = Column(String(255), unique=True, nullable=False, index=True)
    participant_first_name = Column(String(255), nullable=False)
    participant_last_name = Column(String(255), nullable=True)
    participant_dob = Column(Date, nullable=True)
    participant_role = Column(String(50), nullable=False, default="participant", index=True)
    participant_password = Column(String(255), nullable=False)  # bcrypt hash
    participant_phone = Column(String(20), nullable=True)
    participant_city = Column(String(100), nullable=True)
    participant_state = Column(String(2), nullable=True)
    participant_zip = Column(String(10), nullable=True)
    participant_school_or_employer = Column(String(255), nullable=True)
    participant_field_of_interest = Column(String(100), nullable=True)
    total_donations = Column(Numeric(10, 2), nullable=False, default=0)  # maintained by trigger
    login_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "participant_role IN ('participant', 'admin')", name="ck_participants_role"
        ),
    )

class EventTemplate(Base):
    __tablename__ = "events"

    event_name = Column(String(255), primary_key=True)
    event_type = Column(String(100), nullable=True)
    event_description = Column(Text, nullable=True)
    event_recurrence_pattern = Column(String(50), nullable=True)
    event_default_capacity = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

class EventOccurrence(Base):
    __tablename__ = "event_occurrence"

    event_occurrence_id = Column(Integer, primary_key=True, autoincrement=True)
    event_name = Column(
        String(255), ForeignKey("events.event_name", ondelete="SET NULL"), nullable=True
    )
    event_date_time_start = Column(DateTime, nullable=False, index=True)
    event_date_time_end = Column(DateTime, nullable=True)
    event_location = Column(String(255), nullable=True)
    event_capacity = Column(Integer, nullable=True)
    event_registration_deadline = Column(DateTime, nullable=True)
    image_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

class Attendance(Base):
    __tablename__ = "attendance"

    attendance_id = Column(Integer, primary_key=True, autoincrement=True)
    registration_status = Column(String(50), nullable=True)
    registration_attended_flag = Column(Boolean, nullable=True)

class Registration(Base):
    """
    One participant's registration for one event occurrence. The post-event
    survey answers live on the same row and are filled in later.
    """
    __tablename__ = "registration"

    registration_id = Column(Integer, primary_key=True, autoincrement=True)
    participant_id = Column(
        Integer, ForeignKey("participants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_occurrence_id = Column(
        Integer,
        ForeignKey("event_occurrence.event_occurrence_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    attendance_id = Column(
        Integer, ForeignKey("attendance.attendance_id", ondelete="SET NULL"), nullable=True
    )
    registration_check_in_time = Column(DateTime, nullable=True)
    registration_created_at = Column(DateTime, nullable=False, server_default=func.now())

    # Survey fields (1-5 scale)
    survey_satisfaction_score = Column(Integer, nullable=True)
    survey_usefulness_score = Column(Integer, nullable=True)
    survey_instructor_score = Column(Integer, nullable=True)
    survey_recommendation_score = Column(Integer, nullable=True)
    survey_overall_score = Column(Numeric(3, 2), nullable=True)
    survey_nps_bucket = Column(String(20), nullable=True)
    survey_comments = Column(Text, nullable=True)
    survey_submission_date = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("participant_id", "event_occurrence_id", name="uq_registration_participant_occurrence"),
        CheckConstraint("survey_satisfaction_score BETWEEN 1 AND 5", name="ck_registration_satisfaction"),
        CheckConstraint("survey_usefulness_score BETWEEN 1 AND 5", name="ck_registration_usefulness"),
        CheckConstraint("survey_instructor_score BETWEEN 1 AND 5", name="ck_registration_instructor"),
        CheckConstraint("survey_recommendation_score BETWEEN 1 AND 5", name="ck_registration_recommendation"),
    )

class Milestone(Base):
    __tablename__ = "milestone"

    milestone_id = Column(Integer, primary_key=True, autoincrement=True)
    participant_id = Column(
        Integer, ForeignKey("participants.id", ondelete="CASCADE"), nullable=False
    )
    milestone_title = Column(String(255), nullable=False)
    milestone_category = Column(String(100), nullable=True)
    milestone_date = Column(DateTime, nullable=True, server_default=func.now())

class Donation(Base):
    __tablename__ = "donations"

    donation_id = Column(Integer, primary_key=True, autoincrement=True)
    # NULL participant means an anonymous donation
    participant_id = Column(
        Integer, ForeignKey("participants.id", ondelete="SET NULL"), nullable=True, index=True
    )
    donation_date = Column(DateTime, nullable=True)
    donation_amount = Column(Numeric(10, 2), nullable=False)
    donation_number = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

class Program(Base):
    __tablename__ = "programs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    age_range = Column(String(100), nullable=True)
    schedule = Column(String(255), nullable=True)
    fee = Column(Numeric(10, 2), nullable=True)
    additional_info = Column(Text, nullable=True)
    image_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

class ProgramEnrollment(Base):
    __tablename__ = "program_enrollments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("participants.id", ondelete="CASCADE"), nullable=False)
    program_id = Column(Integer, ForeignKey("programs.id", ondelete="CASCADE"), nullable=False)
    enrolled_at = Column(DateTime, nullable=False, server_default=func.now())
    status = Column(String(50), nullable=False, default="active")

    __table_args__ = (
        UniqueConstraint("user_id", "program_id", name="uq_program_enrollments_user_program"),
    )

class ImportRun(Base):
    __tablename__ = "import_runs"

    id = Column(String, primary_key=True, index=True)
    started_at = Column(String, nullable=False)
    dry_run = Column(Boolean, nullable=False, default=False)
    entity_filter = Column(String(100), nullable=True)
    has_failures = Column(Boolean, nullable=False, default=False)
    report_json = Column(Text, nullable=False)


# Keeps participants.total_donations in sync with the donations table (PostgreSQL only)
TOTAL_DONATIONS_FUNCTION = DDL("""
CREATE OR REPLACE FUNCTION update_participant_total_donations()
RETURNS TRIGGER AS $$
DECLARE
  target_id INTEGER;
BEGIN
  IF TG_OP = 'DELETE' THEN
    target_id := OLD.participant_id;
  ELSE
    target_id := NEW.participant_id;
  END IF;
  IF target_id IS NOT NULL THEN
    UPDATE participants
    SET total_donations = (
      SELECT COALESCE(SUM(donation_amount), 0)
      FROM donations
      WHERE participant_id = target_id
    )
    WHERE id = target_id;
  END IF;
  RETURN NULL;
END;
$$ LANGUAGE plpgsql;
""")

TOTAL_DONATIONS_TRIGGER = DDL("""
CREATE TRIGGER trigger_update_total_donations
AFTER INSERT OR UPDATE OR DELETE ON donations
FOR EACH ROW
EXECUTE FUNCTION update_participant_total_donations();
""")

event.listen(Donation.__table__, "after_create", TOTAL_DONATIONS_FUNCTION.execute_if(dialect="postgresql"))
event.listen(Donation.__table__, "after_create", TOTAL_DONATIONS_TRIGGER.execute_if(dialect="postgresql"))
