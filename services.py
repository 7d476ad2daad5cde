# services.py
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from db import (
    DailyMuscleStress,
    Profile,
    SessionExercise,
    SessionSet,
    TemplateDay,
    TemplateSlot,
    WorkoutSession,
    WorkoutTemplate,
)
from errors import InvalidArgument, NotFound, upstream
from exercises import resolve_exercises
from plan import (
    ESTIMATED_STIMULUS,
    generate_day,
    get_muscle_stress,
    load_candidates,
    muscle_weights,
    recent_stress_window,
)
from progression import ExerciseTarget, count_exercise_history, select_targets_bulk
from prescriptions import EXPERIENCE_TIERS

logger = logging.getLogger(__name__)

DEFAULT_EXPERIENCE = "beginner"


def get_experience_tier(db, user_id: str) -> str:
    """
    The user's experience tier from their profile, 'beginner' when unset
    or not one of the known tiers.
    """
    with upstream("profile lookup"):
        profile = db.query(Profile).filter(Profile.id == user_id).first()
    level = (profile.experience_level or "").strip().lower() if profile else ""
    return level if level in EXPERIENCE_TIERS else DEFAULT_EXPERIENCE


def get_template_day(db, user_id: str, day_id: str) -> TemplateDay:
    with upstream("template day lookup"):
        day = (
            db.query(TemplateDay)
            .join(WorkoutTemplate, TemplateDay.template_id == WorkoutTemplate.id)
            .filter(TemplateDay.id == day_id, WorkoutTemplate.user_id == user_id)
            .first()
        )
    if day is None:
        raise NotFound(f"Template day {day_id} not found for user {user_id}")
    return day


def fill_template_day(
    db, user_id: str, day_id: str, preview: bool = False, now: Optional[datetime] = None
) -> List[ExerciseTarget]:
    """
    Generate exercises + targets for one template day.

    Uses the allow-list as candidates, the last 48h of performed stress as
    the starting fatigue, and the profile's experience tier. Unless
    `preview` is set, the day's slots are replaced with the result.

    Returns:
        Ordered targets (may be empty - that's a valid plan outcome)
    """
    day = get_template_day(db, user_id, day_id)
    experience = get_experience_tier(db, user_id)

    candidates = load_candidates(db)
    start, end = recent_stress_window(now)
    stress = get_muscle_stress(db, user_id, start, end)

    exercise_ids = generate_day(db, candidates, user_id, experience, stress)
    history_counts = count_exercise_history(db, user_id, exercise_ids)
    batch = select_targets_bulk(db, exercise_ids, user_id, experience, history_counts)

    if preview:
        return batch.targets

    save_template_slots(db, day, batch.targets)
    return batch.targets


def save_template_slots(db, day: TemplateDay, targets: Iterable[ExerciseTarget]) -> None:
    """Deletes and replaces all slots of that day, in target order."""
    with upstream("template slot write"):
        db.query(TemplateSlot).filter(TemplateSlot.day_id == day.id).delete()
        for i, target in enumerate(targets, start=1):
            db.add(TemplateSlot(
                day_id=day.id,
                exercise_id=target.exercise_id,
                sort_order=i,
                mode=target.mode,
                target_sets=target.sets,
                target_reps=target.reps,
                target_duration_sec=target.duration_sec,
                target_weight=target.weight,
            ))
        db.commit()


def save_sets(db, session_exercise_id: str, rows) -> None:
    """
    rows: iterable of dict-like rows with set_number and reps/weight/
    duration_sec/rpe/rir, plus an optional done flag.
    Deletes and replaces all sets for that session exercise.
    """
    with upstream("session set write"):
        db.query(SessionSet).filter(
            SessionSet.session_exercise_id == session_exercise_id
        ).delete()

        for row in rows:
            # Skip incomplete sets
            if "done" in row and not row["done"]:
                continue
            db.add(SessionSet(
                session_exercise_id=session_exercise_id,
                set_number=int(row["set_number"]),
                reps=int(row["reps"]) if row.get("reps") is not None else None,
                weight=float(row["weight"]) if row.get("weight") is not None else None,
                duration_sec=int(row["duration_sec"]) if row.get("duration_sec") is not None else None,
                rpe=float(row["rpe"]) if row.get("rpe") is not None else None,
                rir=float(row["rir"]) if row.get("rir") is not None else None,
            ))

        db.commit()


def set_stimulus(s: SessionSet) -> float:
    """Stress of one performed set: RPE/10, or the planning estimate."""
    if s.rpe is not None and 1 <= s.rpe <= 10:
        return s.rpe / 10
    return ESTIMATED_STIMULUS


def complete_session(db, session_id: str) -> WorkoutSession:
    """
    Mark a session complete and rebuild the user's daily muscle stress
    for that date from every completed session on the same day.

    Status change and stress rebuild commit together; if the rebuild fails
    the session stays active.
    """
    with upstream("session lookup"):
        sess = db.query(WorkoutSession).filter(WorkoutSession.id == session_id).first()
    if not sess:
        raise NotFound(f"Session {session_id} not found")

    sess.status = "completed"
    sess.completed_at = datetime.utcnow()
    db.add(sess)

    try:
        rebuild_daily_stress(db, sess.user_id, sess.started_at.date(), commit=False)
        with upstream("session completion"):
            db.commit()
    except Exception:
        db.rollback()
        raise
    return sess


def rebuild_daily_stress(db, user_id: str, day, commit: bool = True) -> Dict[str, float]:
    """
    Recompute DailyMuscleStress rows for one user/day from performed sets.
    With commit=False the rows are only flushed and the caller commits.
    """
    day_start = datetime.combine(day, datetime.min.time())
    day_end = datetime.combine(day, datetime.max.time())

    with upstream("daily stress rebuild"):
        performed = (
            db.query(SessionExercise)
            .join(WorkoutSession, SessionExercise.session_id == WorkoutSession.id)
            .filter(WorkoutSession.user_id == user_id)
            .filter(WorkoutSession.status == "completed")
            .filter(WorkoutSession.started_at >= day_start)
            .filter(WorkoutSession.started_at <= day_end)
            .all()
        )

    ids = [se.exercise_id or se.custom_exercise_id for se in performed]
    exercises = resolve_exercises(db, user_id, ids)

    stress: Dict[str, float] = defaultdict(float)
    for se in performed:
        exercise = exercises.get(se.exercise_id or se.custom_exercise_id)
        if exercise is None:
            continue
        weights = muscle_weights(exercise)
        for s in se.sets:
            stimulus = set_stimulus(s)
            for muscle, w in weights.items():
                stress[muscle] += stimulus * w

    with upstream("daily stress rebuild"):
        db.query(DailyMuscleStress).filter(
            DailyMuscleStress.user_id == user_id,
            DailyMuscleStress.date == day,
        ).delete()
        for muscle, value in stress.items():
            db.add(DailyMuscleStress(user_id=user_id, date=day, muscle_key=muscle, stress=value))
        if commit:
            db.commit()
        else:
            db.flush()

    logger.info("Rebuilt daily stress for %s on %s (%d muscles)", user_id, day, len(stress))
    return dict(stress)


def start_session(db, user_id: str, exercise_refs, day_name: Optional[str] = None) -> WorkoutSession:
    """
    Create an active session with its exercises.

    exercise_refs: iterable of (exercise_id, custom_exercise_id) pairs;
    exactly one of each pair must be set.
    """
    sess = WorkoutSession(user_id=user_id, day_name=day_name, status="active")
    for i, (exercise_id, custom_exercise_id) in enumerate(exercise_refs, start=1):
        if bool(exercise_id) == bool(custom_exercise_id):
            raise InvalidArgument("Exactly one of exercise_id or custom_exercise_id must be provided")
        sess.exercises.append(SessionExercise(
            exercise_id=exercise_id,
            custom_exercise_id=custom_exercise_id,
            sort_order=i,
        ))

    with upstream("session create"):
        db.add(sess)
        db.commit()
        db.refresh(sess)
    return sess
