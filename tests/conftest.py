import os

# Must happen before db is imported anywhere (it builds its engine on import)
os.environ["DATABASE_URL"] = "sqlite://"

from datetime import datetime  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from db import (  # noqa: E402
    AIRecommendedExercise,
    Base,
    Exercise,
    ExercisePrescription,
    SessionExercise,
    SessionSet,
    UserCustomExercise,
    WorkoutSession,
)

USER = "user-1"


@pytest.fixture
def db():
    engine = create_engine("sqlite://")
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def make_exercise(db):
    def _make(ex_id, primary=("quads",), implicit=None, is_timed=False, priority=None, **fields):
        ex = Exercise(
            id=ex_id,
            name=fields.pop("name", ex_id),
            primary_muscles=list(primary),
            implicit_hits=dict(implicit or {}),
            is_timed=is_timed,
            **fields,
        )
        db.add(ex)
        if priority is not None:
            db.add(AIRecommendedExercise(exercise_id=ex_id, priority_order=priority))
        db.commit()
        return ex
    return _make


@pytest.fixture
def add_band(db):
    def _add(ex_id, experience="beginner", mode="reps", sets=(3, 5), reps=(8, 12),
             duration=None, is_active=True):
        row = ExercisePrescription(
            exercise_id=ex_id,
            experience=experience,
            mode=mode,
            sets_min=sets[0],
            sets_max=sets[1],
            reps_min=reps[0] if reps and mode == "reps" else None,
            reps_max=reps[1] if reps and mode == "reps" else None,
            duration_sec_min=duration[0] if duration else None,
            duration_sec_max=duration[1] if duration else None,
            is_active=is_active,
        )
        db.add(row)
        db.commit()
        return row
    return _add


@pytest.fixture
def add_custom(db):
    def _add(custom_id, user_id=USER, primary=("biceps",), is_timed=False, **band):
        custom = UserCustomExercise(
            id=custom_id,
            user_id=user_id,
            name=custom_id,
            primary_muscles=list(primary),
            implicit_hits={},
            is_timed=is_timed,
            **band,
        )
        db.add(custom)
        db.commit()
        return custom
    return _add


@pytest.fixture
def log_session(db):
    """
    Log one session. `exercises` is a list of (exercise_id, sets) where sets
    is a list of (reps, weight, rpe); ids starting with "custom-" are stored
    as custom exercise references.
    """
    def _log(exercises, user_id=USER, started_at=None, status="completed"):
        started_at = started_at or datetime(2026, 10, 1, 9, 0)
        sess = WorkoutSession(user_id=user_id, status=status, started_at=started_at)
        db.add(sess)
        db.flush()
        for order, (ex_id, sets) in enumerate(exercises, start=1):
            is_custom = ex_id.startswith("custom-")
            se = SessionExercise(
                session_id=sess.id,
                exercise_id=None if is_custom else ex_id,
                custom_exercise_id=ex_id if is_custom else None,
                sort_order=order,
            )
            db.add(se)
            db.flush()
            for n, (reps, weight, rpe) in enumerate(sets, start=1):
                db.add(SessionSet(
                    session_exercise_id=se.id,
                    set_number=n,
                    reps=reps,
                    weight=weight,
                    rpe=rpe,
                    performed_at=started_at,
                ))
        db.commit()
        return sess
    return _log
