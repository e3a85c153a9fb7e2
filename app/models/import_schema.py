from typing import Any, Callable, List, Optional, Literal, Dict
from decimal import Decimal, ROUND_HALF_UP
from pydantic import BaseModel, Field

FieldTransform = Literal[
    "string",
    "lowercase",
    "integer",
    "decimal",   # currency, e.g. "$1,250.00"
    "boolean",
    "date",
    "datetime",
    "password",  # bcrypt-hashed unless already hashed
]

class ForeignKeyRef(BaseModel):
    """
    Describes how a natural key found in the source (e.g. an email) is
    translated into the value stored in `column` (e.g. a participant id).
    """
    column: str                  # destination column holding the reference
    entity: str                  # name of the referenced entity config
    table: str                   # referenced table
    match_column: str            # natural-key column in the referenced table
    value_column: str            # column whose value is stored in `column`
    required: bool = True        # False: an empty source value is allowed (e.g. anonymous donation)
    label: Optional[str] = None  # human name used in skip reasons

    def display_name(self) -> str:
        return self.label or self.entity

class EntityConfig(BaseModel):
    name: str
    source_file: str
    table: str
    unique_key: List[str]                           # destination column(s), composite allowed
    column_map: Dict[str, str]                      # source column -> destination column
    field_transforms: Dict[str, FieldTransform] = Field(default_factory=dict)
    foreign_keys: List[ForeignKeyRef] = Field(default_factory=list)
    derived_fields: Dict[str, str] = Field(default_factory=dict)  # destination column -> derivation name
    description: Optional[str] = None

    def source_column_for(self, dest_column: str) -> Optional[str]:
        return next((src for src, dest in self.column_map.items() if dest == dest_column), None)

    def destination_columns(self) -> List[str]:
        return list(self.column_map.values()) + list(self.derived_fields.keys())

    def dependencies(self) -> List[str]:
        return sorted({fk.entity for fk in self.foreign_keys if fk.entity != self.name})

    def foreign_key_for(self, column: str) -> Optional[ForeignKeyRef]:
        return next((fk for fk in self.foreign_keys if fk.column == column), None)

    def credential_source_columns(self) -> List[str]:
        """Source columns feeding password transforms; their values are read verbatim."""
        return [src for src, dest in self.column_map.items() if self.field_transforms.get(dest) == "password"]


# Derived fields: computed from the mapped row when the source did not supply them
SURVEY_SCORE_COLUMNS = [
    "survey_satisfaction_score",
    "survey_usefulness_score",
    "survey_instructor_score",
    "survey_recommendation_score",
]

def derive_survey_overall_score(row: Dict[str, Any]) -> Optional[Decimal]:
    scores = [row.get(col) for col in SURVEY_SCORE_COLUMNS]
    if any(s is None for s in scores):
        return None
    return (Decimal(sum(scores)) / len(scores)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

def derive_nps_bucket(row: Dict[str, Any]) -> Optional[str]:
    """
    5 -> Promoter, 4 -> Passive, 3 or lower -> Detractor (1-5 recommendation scale).
    """
    score = row.get("survey_recommendation_score")
    if score is None:
        return None
    if score >= 5:
        return "Promoter"
    if score == 4:
        return "Passive"
    return "Detractor"

DERIVATIONS: Dict[str, Callable[[Dict[str, Any]], Any]] = {
    "survey_overall_score": derive_survey_overall_score,
    "nps_bucket": derive_nps_bucket,
}


def _participant_ref(column: str, required: bool = True) -> ForeignKeyRef:
    return ForeignKeyRef(
        column=column,
        entity="participants",
        table="participants",
        match_column="participant_email",
        value_column="id",
        required=required,
        label="participant",
    )

# Declarative import table. Adding an importable entity means adding an entry here.
IMPORT_SCHEMA: List[EntityConfig] = [
    EntityConfig(
        name="participants",
        source_file="participants_table_v3.csv",
        table="participants",
        unique_key=["participant_email"],
        column_map={
            "ParticipantEmail": "participant_email",
            "ParticipantFirstName": "participant_first_name",
            "ParticipantLastName": "participant_last_name",
            "ParticipantDOB": "participant_dob",
            "ParticipantRole": "participant_role",
            "ParticipantPassword": "participant_password",
            "ParticipantPhone": "participant_phone",
            "ParticipantCity": "participant_city",
            "ParticipantState": "participant_state",
            "ParticipantZip": "participant_zip",
            "ParticipantSchoolOrEmployer": "participant_school_or_employer",
            "ParticipantFieldOfInterest": "participant_field_of_interest",
        },
        field_transforms={
            "participant_dob": "date",
            "participant_role": "lowercase",
            "participant_password": "password",
        },
        description="People who can sign in (participants and admins).",
    ),
    EntityConfig(
        name="event_templates",
        source_file="event_template_table.csv",
        table="events",
        unique_key=["event_name"],
        column_map={
            "event_name": "event_name",
            "event_type": "event_type",
            "event_description": "event_description",
            "event_recurrence_pattern": "event_recurrence_pattern",
            "event_default_capacity": "event_default_capacity",
        },
        field_transforms={"event_default_capacity": "integer"},
        description="Named categories of recurring events.",
    ),
    EntityConfig(
        name="attendance",
        source_file="attendance_table.csv",
        table="attendance",
        unique_key=["attendance_id"],
        column_map={
            "AttendanceID": "attendance_id",
            "RegistrationStatus": "registration_status",
            "RegistrationAttendedFlag": "registration_attended_flag",
        },
        field_transforms={
            "attendance_id": "integer",
            "registration_attended_flag": "boolean",
        },
        description="Attendance status lookup referenced by registrations.",
    ),
    EntityConfig(
        name="event_occurrences",
        source_file="event_occurance_table.csv",
        table="event_occurrence",
        unique_key=["event_occurrence_id"],
        column_map={
            "event_occurrence_id": "event_occurrence_id",
            "event_name": "event_name",
            "event_date_time_start": "event_date_time_start",
            "event_date_time_end": "event_date_time_end",
            "event_location": "event_location",
            "event_capacity": "event_capacity",
            "event_registration_deadline": "event_registration_deadline",
        },
        field_transforms={
            "event_occurrence_id": "integer",
            "event_date_time_start": "datetime",
            "event_date_time_end": "datetime",
            "event_capacity": "integer",
            "event_registration_deadline": "datetime",
        },
        foreign_keys=[
            ForeignKeyRef(
                column="event_name",
                entity="event_templates",
                table="events",
                match_column="event_name",
                value_column="event_name",
                required=False,
                label="event template",
            ),
        ],
        description="Scheduled instances of an event template.",
    ),
    EntityConfig(
        name="registrations",
        source_file="registration_table.csv",
        table="registration",
        unique_key=["participant_id", "event_occurrence_id"],
        column_map={
            "RegistrationID": "registration_id",
            "ParticipantEmail": "participant_id",
            "EventOccurrenceID": "event_occurrence_id",
            "AttendanceID": "attendance_id",
            "RegistrationCheckInTime": "registration_check_in_time",
            "RegistrationCreatedAt": "registration_created_at",
            "SurveySatisfactionScore": "survey_satisfaction_score",
            "SurveyUsefulnessScore": "survey_usefulness_score",
            "SurveyInstructorScore": "survey_instructor_score",
            "SurveyRecommendationScore": "survey_recommendation_score",
            "SurveyOverallScore": "survey_overall_score",
            "SurveyNPSBucket": "survey_nps_bucket",
            "SurveyComments": "survey_comments",
            "SurveySubmissionDate": "survey_submission_date",
        },
        field_transforms={
            "registration_id": "integer",
            "event_occurrence_id": "integer",
            "attendance_id": "integer",
            "registration_check_in_time": "datetime",
            "registration_created_at": "datetime",
            "survey_satisfaction_score": "integer",
            "survey_usefulness_score": "integer",
            "survey_instructor_score": "integer",
            "survey_recommendation_score": "integer",
            "survey_overall_score": "decimal",
            "survey_submission_date": "datetime",
        },
        foreign_keys=[
            _participant_ref("participant_id"),
            ForeignKeyRef(
                column="event_occurrence_id",
                entity="event_occurrences",
                table="event_occurrence",
                match_column="event_occurrence_id",
                value_column="event_occurrence_id",
                label="event occurrence",
            ),
            ForeignKeyRef(
                column="attendance_id",
                entity="attendance",
                table="attendance",
                match_column="attendance_id",
                value_column="attendance_id",
                required=False,
                label="attendance record",
            ),
        ],
        derived_fields={
            "survey_overall_score": "survey_overall_score",
            "survey_nps_bucket": "nps_bucket",
        },
        description="Event registrations, with post-event survey answers on the same row.",
    ),
    EntityConfig(
        name="donations",
        source_file="donations_table.csv",
        table="donations",
        unique_key=["donation_id"],
        column_map={
            "DonationID": "donation_id",
            "ParticipantEmail": "participant_id",
            "DonationDate": "donation_date",
            "DonationAmount": "donation_amount",
            "DonationNumber": "donation_number",
        },
        field_transforms={
            "donation_id": "integer",
            "donation_date": "datetime",
            "donation_amount": "decimal",
            "donation_number": "integer",
        },
        foreign_keys=[_participant_ref("participant_id", required=False)],
        description="Donations; a blank participant email means anonymous.",
    ),
    EntityConfig(
        name="milestones",
        source_file="milestones_table_v2.csv",
        table="milestone",
        unique_key=["milestone_id"],
        column_map={
            "MilestoneID": "milestone_id",
            "ParticipantEmail": "participant_id",
            "MilestoneTitle": "milestone_title",
            "MilestoneCategory": "milestone_category",
            "MilestoneDate": "milestone_date",
        },
        field_transforms={
            "milestone_id": "integer",
            "milestone_date": "datetime",
        },
        foreign_keys=[_participant_ref("participant_id")],
        description="Achievements scoped to one participant.",
    ),
    EntityConfig(
        name="programs",
        source_file="programs_table.csv",
        table="programs",
        unique_key=["title"],
        column_map={
            "ProgramTitle": "title",
            "ProgramDescription": "description",
            "ProgramAgeRange": "age_range",
            "ProgramSchedule": "schedule",
            "ProgramFee": "fee",
            "ProgramAdditionalInfo": "additional_info",
            "ProgramImageURL": "image_url",
        },
        field_transforms={"fee": "decimal"},
        description="Program catalog.",
    ),
    EntityConfig(
        name="program_enrollments",
        source_file="program_enrollments_table.csv",
        table="program_enrollments",
        unique_key=["user_id", "program_id"],
        column_map={
            "ParticipantEmail": "user_id",
            "ProgramTitle": "program_id",
            "EnrolledAt": "enrolled_at",
            "EnrollmentStatus": "status",
        },
        field_transforms={
            "enrolled_at": "datetime",
            "status": "lowercase",
        },
        foreign_keys=[
            _participant_ref("user_id"),
            ForeignKeyRef(
                column="program_id",
                entity="programs",
                table="programs",
                match_column="title",
                value_column="id",
                label="program",
            ),
        ],
        description="Participant x program join table.",
    ),
]

def get_entity_config(name: str, configs: Optional[List[EntityConfig]] = None) -> Optional[EntityConfig]:
    return next((c for c in (configs or IMPORT_SCHEMA) if c.name == name), None)
