import pytest
from sqlalchemy import insert

from app.db.models import Participant, Program
from app.models.import_schema import ForeignKeyRef
from app.services.fk_resolver import ForeignKeyResolver

PARTICIPANT_REF = ForeignKeyRef(
    column="participant_id",
    entity="participants",
    table="participants",
    match_column="participant_email",
    value_column="id",
    label="participant",
)

PROGRAM_REF = ForeignKeyRef(
    column="program_id",
    entity="programs",
    table="programs",
    match_column="title",
    value_column="id",
)

# --- Fixtures ---

@pytest.fixture
def seeded_session(db_session):
    """
    Goal: Two participants already in the database.
    """
    db_session.execute(insert(Participant.__table__), [
        {"id": 10, "participant_email": "a@x.com", "participant_first_name": "A", "participant_password": "h"},
        {"id": 11, "participant_email": "b@x.com", "participant_first_name": "B", "participant_password": "h"},
    ])
    db_session.commit()
    return db_session

# --- Tests for resolve ---

def test_resolve_hit_is_cached(seeded_session):
    """
    Goal: A natural key is looked up once, then served from the cache.
    """
    resolver = ForeignKeyResolver(seeded_session)

    assert resolver.resolve(PARTICIPANT_REF, "a@x.com") == 10
    assert resolver.resolve(PARTICIPANT_REF, "a@x.com") == 10

    assert resolver.lookups == 1

def test_resolve_miss_is_not_cached(seeded_session):
    """
    Goal: A key inserted after a miss is found by the next lookup.
    """
    resolver = ForeignKeyResolver(seeded_session)
    assert resolver.resolve(PARTICIPANT_REF, "c@x.com") is None

    seeded_session.execute(insert(Participant.__table__).values(
        id=12, participant_email="c@x.com", participant_first_name="C", participant_password="h"
    ))
    seeded_session.commit()

    assert resolver.resolve(PARTICIPANT_REF, "c@x.com") == 12
    assert resolver.lookups == 2

def test_resolve_match_is_exact(seeded_session):
    resolver = ForeignKeyResolver(seeded_session)
    assert resolver.resolve(PARTICIPANT_REF, "A@X.COM") is None

def test_resolve_empty_key(seeded_session):
    resolver = ForeignKeyResolver(seeded_session)

    assert resolver.resolve(PARTICIPANT_REF, "") is None
    assert resolver.resolve(PARTICIPANT_REF, None) is None
    assert resolver.lookups == 0

# --- Tests for prewarm ---

def test_prewarm_loads_whole_table(seeded_session):
    """
    Goal: After prewarming, resolving any existing key issues no point query.
    """
    resolver = ForeignKeyResolver(seeded_session)

    count = resolver.prewarm(PARTICIPANT_REF)

    assert count == 2
    assert resolver.resolve(PARTICIPANT_REF, "b@x.com") == 11
    assert resolver.lookups == 0

def test_caches_are_separate_per_table(seeded_session):
    seeded_session.execute(insert(Program.__table__).values(id=1, title="a@x.com"))
    seeded_session.commit()
    resolver = ForeignKeyResolver(seeded_session)
    resolver.prewarm(PARTICIPANT_REF)

    assert resolver.resolve(PROGRAM_REF, "a@x.com") == 1
    assert resolver.resolve(PARTICIPANT_REF, "a@x.com") == 10

# --- Tests for remember (dry runs) ---

def test_remember_assigns_placeholder_ids(db_session):
    """
    Goal: Rows a dry run would insert become resolvable, each with its own stand-in id.
    """
    resolver = ForeignKeyResolver(db_session)
    resolver.register(PARTICIPANT_REF)

    resolver.remember("participants", {"participant_email": "new1@x.com"})
    resolver.remember("participants", {"participant_email": "new2@x.com"})

    first = resolver.resolve(PARTICIPANT_REF, "new1@x.com")
    second = resolver.resolve(PARTICIPANT_REF, "new2@x.com")
    assert first < 0 and second < 0
    assert first != second
    assert resolver.lookups == 0

def test_remember_uses_supplied_value(db_session):
    ref = ForeignKeyRef(
        column="event_occurrence_id",
        entity="event_occurrences",
        table="event_occurrence",
        match_column="event_occurrence_id",
        value_column="event_occurrence_id",
    )
    resolver = ForeignKeyResolver(db_session)
    resolver.register(ref)

    resolver.remember("event_occurrence", {"event_occurrence_id": 42})

    assert resolver.resolve(ref, 42) == 42

def test_remember_ignores_unregistered_tables(db_session):
    resolver = ForeignKeyResolver(db_session)

    resolver.remember("participants", {"participant_email": "new@x.com"})

    assert resolver.resolve(PARTICIPANT_REF, "new@x.com") is None
