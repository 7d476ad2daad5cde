# progression.py
"""
Target selection: picks sets / reps / duration / weight inside a curated
prescription band, with progressive overload when the user has history.

Two entry points on purpose:
- select_target(): one exercise, reads history, applies progressive overload.
- select_targets_bulk(): many exercises for plan generation, band picking
  only (no overload), exercises without a band are dropped and counted.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session as OrmSession

from db import SessionExercise, SessionSet, WorkoutSession
from errors import NotFound, upstream
from exercises import SOURCE_CUSTOM, resolve_exercise, resolve_exercises
from prescriptions import (
    MODE_REPS,
    MODE_TIMED,
    PrescriptionBand,
    get_band,
    get_bands_by_mode,
    get_custom_band,
)

logger = logging.getLogger(__name__)

# ------- constants / config -------

# Fewer completed sessions than this → treat as a new user (lower half of band)
NEW_USER_HISTORY_THRESHOLD = 3

# Progressive overload (reps mode)
OVERLOAD_REPS_FRACTION = 0.9     # last reps ≥ 90% of reps_max → add weight
OVERLOAD_MAX_RPE = 7             # ...but only if effort was acceptable
WEIGHT_STEP_FRACTION = 0.025     # 2.5% of last weight
MIN_WEIGHT_STEP = 2.5            # never smaller than 2.5 units

# Progressive overload (timed mode)
DURATION_STEP_SEC = 5

HISTORY_LIMIT = 5                # last N sets summarised


@dataclass(frozen=True)
class ExerciseHistorySummary:
    """Validated summary of the most recent sets of one exercise."""
    last_reps: Optional[int] = None
    last_weight: Optional[float] = None
    last_duration: Optional[int] = None
    avg_rpe: Optional[float] = None
    set_count: int = 0

    @property
    def has_reps_history(self) -> bool:
        # weight without reps (or the reverse) isn't usable for overload
        return self.last_reps is not None and self.last_weight is not None

    @property
    def has_duration_history(self) -> bool:
        return self.last_duration is not None


@dataclass(frozen=True)
class ExerciseTarget:
    exercise_id: str
    mode: str
    sets: int
    reps: Optional[int] = None
    duration_sec: Optional[int] = None
    weight: Optional[float] = None  # suggested weight, reps mode with history only


@dataclass
class TargetBatch:
    targets: List[ExerciseTarget] = field(default_factory=list)
    excluded: List[str] = field(default_factory=list)

    @property
    def excluded_count(self) -> int:
        return len(self.excluded)


# ------- helpers -------

def clamp(value, lo, hi):
    return max(lo, min(hi, value))


def pick_in_band(lo: int, hi: int, history_count: int) -> int:
    """
    New users (history_count < 3) get floor(midpoint), experienced users
    get ceil(midpoint). Always inside [lo, hi].
    """
    mid = (lo + hi) / 2
    if history_count < NEW_USER_HISTORY_THRESHOLD:
        value = math.floor(mid)
    else:
        value = math.ceil(mid)
    return int(clamp(value, lo, hi))


def apply_progressive_overload(
    band: PrescriptionBand, history: ExerciseHistorySummary
) -> Tuple[int, float]:
    """
    Reps-mode overload from last performance.

    - Hit ≥90% of reps_max at RPE ≤ 7 (or no RPE logged) → add
      max(2.5%, 2.5) to the weight and restart at reps_min.
    - Otherwise → one more rep than last time (clamped), same weight.

    Returns:
        (reps, weight)
    """
    last_reps = history.last_reps
    last_weight = history.last_weight

    effort_ok = history.avg_rpe is None or history.avg_rpe <= OVERLOAD_MAX_RPE
    if last_reps >= OVERLOAD_REPS_FRACTION * band.reps_max and effort_ok:
        step = max(last_weight * WEIGHT_STEP_FRACTION, MIN_WEIGHT_STEP)
        return band.reps_min, round(last_weight + step, 2)

    reps = clamp(last_reps + 1, band.reps_min, band.reps_max)
    return int(reps), last_weight


def choose_target(
    exercise_id: str,
    mode: str,
    band: PrescriptionBand,
    history_count: int = 0,
    history: Optional[ExerciseHistorySummary] = None,
) -> ExerciseTarget:
    """
    Pure target picking. Pass history=None to skip progressive overload
    (that's what the bulk path does).
    """
    sets = pick_in_band(band.sets_min, band.sets_max, history_count)
    reps = duration_sec = weight = None

    if mode == MODE_REPS and band.has_reps:
        if history is not None and history.has_reps_history:
            reps, weight = apply_progressive_overload(band, history)
        else:
            reps = pick_in_band(band.reps_min, band.reps_max, history_count)

    elif mode == MODE_TIMED and band.has_duration:
        if history is not None and history.has_duration_history:
            duration_sec = int(clamp(
                history.last_duration + DURATION_STEP_SEC,
                band.duration_sec_min,
                band.duration_sec_max,
            ))
        else:
            duration_sec = pick_in_band(band.duration_sec_min, band.duration_sec_max, history_count)

    return ExerciseTarget(
        exercise_id=exercise_id,
        mode=mode,
        sets=sets,
        reps=reps,
        duration_sec=duration_sec,
        weight=weight,
    )


def _positive(value):
    if value is None or value <= 0:
        return None
    return value


def summarize_history(sets: List[SessionSet]) -> Optional[ExerciseHistorySummary]:
    """
    Summarise sets ordered newest first. Non-positive quantities and RPE
    outside 1..10 are treated as missing.
    """
    if not sets:
        return None

    latest = sets[0]
    reps = _positive(latest.reps)
    weight = _positive(latest.weight)
    duration = _positive(latest.duration_sec)

    rpes = [s.rpe for s in sets if s.rpe is not None and 1 <= s.rpe <= 10]
    avg_rpe = sum(rpes) / len(rpes) if rpes else None

    return ExerciseHistorySummary(
        last_reps=int(reps) if reps is not None else None,
        last_weight=float(weight) if weight is not None else None,
        last_duration=int(duration) if duration is not None else None,
        avg_rpe=avg_rpe,
        set_count=len(sets),
    )


# ------- history accessors -------

def get_exercise_history(
    db: OrmSession, user_id: str, exercise_id: str, limit: int = HISTORY_LIMIT
) -> Optional[ExerciseHistorySummary]:
    """
    Last `limit` sets of this exercise from the user's completed sessions.

    Works for master and custom ids alike.

    Returns:
        ExerciseHistorySummary, or None when the user never did it
    """
    with upstream("exercise history lookup"):
        sets = (
            db.query(SessionSet)
            .join(SessionExercise, SessionSet.session_exercise_id == SessionExercise.id)
            .join(WorkoutSession, SessionExercise.session_id == WorkoutSession.id)
            .filter(WorkoutSession.user_id == user_id)
            .filter(WorkoutSession.status == "completed")
            .filter(or_(
                SessionExercise.exercise_id == exercise_id,
                SessionExercise.custom_exercise_id == exercise_id,
            ))
            .order_by(
                WorkoutSession.started_at.desc(),
                SessionSet.performed_at.desc(),
                SessionSet.set_number.desc(),
            )
            .limit(limit)
            .all()
        )
    return summarize_history(sets)


def count_exercise_history(
    db: OrmSession, user_id: str, exercise_ids: Iterable[str]
) -> Dict[str, int]:
    """Number of distinct completed sessions that contain each exercise."""
    ids = list(exercise_ids)
    if not ids:
        return {}

    with upstream("exercise history count"):
        rows = (
            db.query(SessionExercise.exercise_id, func.count(func.distinct(WorkoutSession.id)))
            .join(WorkoutSession, SessionExercise.session_id == WorkoutSession.id)
            .filter(WorkoutSession.user_id == user_id)
            .filter(WorkoutSession.status == "completed")
            .filter(SessionExercise.exercise_id.in_(ids))
            .group_by(SessionExercise.exercise_id)
            .all()
        )
    return {ex_id: int(n) for ex_id, n in rows}


# ------- main API -------

def select_target(
    db: OrmSession,
    exercise_id: Optional[str],
    user_id: str,
    experience: str,
    history_count: int = 0,
    custom_exercise_id: Optional[str] = None,
) -> Optional[ExerciseTarget]:
    """
    Select targets for a single exercise, with progressive overload.

    1. Resolve the exercise (missing → not applicable).
    2. Mode comes from is_timed.
    3. Band from the curated table (custom exercises: their own band).
       No band → not applicable, never a guessed target.
    4. Pick sets / reps / duration, using history for overload.

    Returns:
        ExerciseTarget, or None when no recommendation is possible

    Raises:
        InvalidArgument: both or neither id given
        UpstreamUnavailable: database unreachable
    """
    try:
        exercise = resolve_exercise(
            db, user_id, exercise_id=exercise_id, custom_exercise_id=custom_exercise_id
        )
    except NotFound:
        logger.info("select_target: exercise %s not found for user %s",
                    exercise_id or custom_exercise_id, user_id)
        return None

    mode = exercise.mode
    if exercise.source == SOURCE_CUSTOM:
        band = get_custom_band(db, exercise.id, user_id)
        if band is not None and band.mode != mode:
            logger.warning("Custom exercise %s band mode %s does not match %s",
                           exercise.id, band.mode, mode)
            band = None
    else:
        band = get_band(db, exercise.id, experience, mode)

    if band is None:
        return None

    history = get_exercise_history(db, user_id, exercise.id)
    target = choose_target(exercise.id, mode, band, history_count, history)

    logger.debug(
        "select_target: %s mode=%s band_sets=[%d,%d] history=%s -> %s",
        exercise.id, mode, band.sets_min, band.sets_max, history is not None, target,
    )
    return target


def select_targets_bulk(
    db: OrmSession,
    exercise_ids: Iterable[str],
    user_id: str,
    experience: str,
    history_counts: Optional[Mapping[str, int]] = None,
) -> TargetBatch:
    """
    Bulk target selection used by plan generation.

    Resolves all exercises and fetches both band maps in batched round
    trips, then picks targets per exercise WITHOUT progressive overload.
    Exercises that don't resolve or have no band are dropped and listed in
    TargetBatch.excluded.
    """
    requested = list(dict.fromkeys(i for i in exercise_ids if i))
    history_counts = history_counts or {}
    batch = TargetBatch()

    resolved = resolve_exercises(db, user_id, requested)

    ids_by_mode: Dict[str, List[str]] = {MODE_REPS: [], MODE_TIMED: []}
    for ex in resolved.values():
        if ex.source != SOURCE_CUSTOM:
            ids_by_mode[ex.mode].append(ex.id)
    bands = get_bands_by_mode(db, ids_by_mode, experience)

    for ex_id in requested:
        exercise = resolved.get(ex_id)
        if exercise is None:
            batch.excluded.append(ex_id)
            continue

        if exercise.source == SOURCE_CUSTOM:
            band = get_custom_band(db, ex_id, user_id)
            if band is not None and band.mode != exercise.mode:
                band = None
        else:
            band = bands[exercise.mode].get(ex_id)

        if band is None:
            batch.excluded.append(ex_id)
            continue

        batch.targets.append(
            choose_target(ex_id, exercise.mode, band, history_counts.get(ex_id, 0))
        )

    logger.info(
        "select_targets_bulk: requested=%d resolved=%d targets=%d excluded=%d",
        len(requested), len(resolved), len(batch.targets), batch.excluded_count,
    )
    return batch
