# plan.py
"""
Day generation with in-flight fatigue simulation.

Greedy selector over the AI allow-list: every pick adds its estimated
stress to a simulated per-muscle fatigue map, and candidates whose worst
muscle would already sit in the red zone are never picked.

Fatigue zones (fraction of MAX_FATIGUE_PER_MUSCLE, worst muscle wins):
- green  (≤ 0.50): no penalty
- yellow (≤ 0.85): penalty = 0.5 × base priority
- red    (> 0.85): hard stop, candidate is skipped

The simulation starts from a snapshot of performed stress and never
reads or writes the database while it runs.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session as OrmSession

from db import AIRecommendedExercise, DailyMuscleStress
from errors import upstream
from exercises import SOURCE_CUSTOM, EffectiveExercise, resolve_exercises
from prescriptions import MODE_REPS, MODE_TIMED, PrescriptionBand, get_bands_by_mode

logger = logging.getLogger(__name__)

# ----------------- FATIGUE CONFIG -----------------

ESTIMATED_STIMULUS = 0.7        # assumed stress per set (~RPE 7-8)
MAX_FATIGUE_PER_MUSCLE = 10     # normalization ceiling
GREEN_THRESHOLD = 0.5
RED_THRESHOLD = 0.85
YELLOW_PENALTY = 0.5            # fraction of base priority lost in yellow

ZONE_GREEN = "green"
ZONE_YELLOW = "yellow"
ZONE_RED = "red"

ALLOW_LIST_LIMIT = 50
STRESS_WINDOW_HOURS = 48

MuscleStressMap = Dict[str, float]


class Candidate(NamedTuple):
    exercise_id: str
    priority: Optional[int] = None   # lower = earlier in the allow-list


@dataclass(frozen=True)
class ExerciseStressProfile:
    exercise_id: str
    target_sets: int
    per_muscle_weights: Dict[str, float]   # sums to 1
    base_priority: float

    @property
    def total_stress(self) -> float:
        return self.target_sets * ESTIMATED_STIMULUS


class SimulatedFatigueState:
    """
    Per-run fatigue accumulator. Seeded from a copy of the snapshot so the
    caller's map is never mutated, and discarded when the run returns.
    """

    def __init__(self, initial: Optional[Mapping[str, float]] = None):
        self._fatigue: MuscleStressMap = dict(initial or {})

    def snapshot(self) -> MuscleStressMap:
        return dict(self._fatigue)

    def register(self, profile: ExerciseStressProfile) -> None:
        """Add a chosen exercise's estimated stress, split by muscle weight."""
        total = profile.total_stress
        for muscle, weight in profile.per_muscle_weights.items():
            self._fatigue[muscle] = self._fatigue.get(muscle, 0.0) + total * weight

    def worst_fraction(self, profile: ExerciseStressProfile) -> float:
        worst = 0.0
        for muscle in profile.per_muscle_weights:
            current = self._fatigue.get(muscle, 0.0)
            fraction = max(0.0, min(1.0, current / MAX_FATIGUE_PER_MUSCLE))
            worst = max(worst, fraction)
        return worst

    def zone_for(self, profile: ExerciseStressProfile) -> str:
        return zone_for_fraction(self.worst_fraction(profile))


def zone_for_fraction(fraction: float) -> str:
    if fraction <= GREEN_THRESHOLD:
        return ZONE_GREEN
    if fraction <= RED_THRESHOLD:
        return ZONE_YELLOW
    return ZONE_RED


def score_for(profile: ExerciseStressProfile, zone: str) -> Optional[float]:
    """Score = base priority − fatigue penalty. None means excluded (red)."""
    if zone == ZONE_RED:
        return None
    if zone == ZONE_YELLOW:
        return profile.base_priority - YELLOW_PENALTY * profile.base_priority
    return profile.base_priority


# ----------------- PROFILE BUILDING -----------------

def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def muscle_weights(exercise: EffectiveExercise) -> Dict[str, float]:
    """
    Primary muscles count 1 each, implicit hits add their own weight
    (non-positive weights ignored). Normalized so the weights sum to 1;
    empty when the exercise hits nothing.
    """
    raw: Dict[str, float] = {}
    for muscle in exercise.primary_muscles:
        raw[muscle] = raw.get(muscle, 0.0) + 1.0
    for muscle, weight in exercise.implicit_hits.items():
        if weight is None or weight <= 0:
            continue
        raw[muscle] = raw.get(muscle, 0.0) + float(weight)

    total = sum(raw.values())
    if total <= 0:
        return {}
    return {muscle: w / total for muscle, w in raw.items()}


def base_priorities(candidates: Sequence[Candidate]) -> Dict[str, float]:
    """
    Earlier allow-list entries score higher: (max_priority + 1) − priority.
    A candidate without a priority ranks last (base priority 1).
    """
    max_priority = max([c.priority for c in candidates if c.priority is not None] + [0])
    result: Dict[str, float] = {}
    for c in candidates:
        priority = c.priority if c.priority is not None else max_priority
        result.setdefault(c.exercise_id, float(max_priority + 1 - priority))
    return result


def build_stress_profiles(
    candidates: Sequence[Candidate],
    exercises: Mapping[str, EffectiveExercise],
    bands: Mapping[str, Mapping[str, PrescriptionBand]],
) -> Tuple[List[ExerciseStressProfile], Dict[str, str]]:
    """
    One profile per usable candidate, in candidate order.

    Args:
        candidates: allow-list entries, in input order
        exercises: resolved exercises by id
        bands: {mode: {exercise_id: band}}

    Returns:
        (profiles, excluded) where excluded maps exercise_id -> reason
    """
    priorities = base_priorities(candidates)
    profiles: List[ExerciseStressProfile] = []
    excluded: Dict[str, str] = {}
    seen = set()

    for c in candidates:
        ex_id = c.exercise_id
        if ex_id in seen:
            continue
        seen.add(ex_id)

        exercise = exercises.get(ex_id)
        if exercise is None:
            excluded[ex_id] = "unresolved"
            continue

        band = bands.get(exercise.mode, {}).get(ex_id)
        if band is None:
            excluded[ex_id] = f"no {exercise.mode} prescription"
            continue

        weights = muscle_weights(exercise)
        if not weights:
            excluded[ex_id] = "no muscle data"
            continue

        profiles.append(ExerciseStressProfile(
            exercise_id=ex_id,
            target_sets=round_half_up(band.sets_midpoint),
            per_muscle_weights=weights,
            base_priority=priorities[ex_id],
        ))

    for ex_id, reason in excluded.items():
        logger.info("Excluding %s from generation: %s", ex_id, reason)
    return profiles, excluded


# ----------------- GREEDY SELECTION -----------------

def select_exercises(
    profiles: Sequence[ExerciseStressProfile],
    initial_stress: Optional[Mapping[str, float]] = None,
) -> List[str]:
    """
    Greedy, single pass, no backtracking. Strictly sequential: each pick
    changes the fatigue every later pick is judged against.

    Ties on score go to the candidate seen first in `profiles` order.
    """
    sim = SimulatedFatigueState(initial_stress)
    remaining = list(profiles)
    result: List[str] = []

    while remaining:
        best: Optional[ExerciseStressProfile] = None
        best_score = None

        for profile in remaining:
            score = score_for(profile, sim.zone_for(profile))
            if score is None:
                continue
            if best_score is None or score > best_score:
                best, best_score = profile, score

        if best is None:
            # everything left is red → permanently out for this run
            break

        result.append(best.exercise_id)
        sim.register(best)
        remaining.remove(best)

    return result


# ----------------- DB-BACKED ENTRY POINTS -----------------

def generate_day(
    db: OrmSession,
    candidates: Sequence[Candidate],
    user_id: str,
    experience: str,
    initial_stress: Optional[Mapping[str, float]] = None,
) -> List[str]:
    """
    Pick an ordered list of exercise ids for one day.

    Candidates that can't be resolved or have no band for their mode are
    excluded (logged) without affecting anybody else's score. An empty
    list is a valid answer.

    Raises:
        UpstreamUnavailable: database unreachable while loading inputs
    """
    initial_stress = dict(initial_stress or {})
    ids = [c.exercise_id for c in candidates]

    exercises = resolve_exercises(db, user_id, ids)

    ids_by_mode: Dict[str, List[str]] = {MODE_REPS: [], MODE_TIMED: []}
    for ex in exercises.values():
        # allow-list bands live in the curated table only
        if ex.source != SOURCE_CUSTOM:
            ids_by_mode[ex.mode].append(ex.id)
    bands = get_bands_by_mode(db, ids_by_mode, experience)

    profiles, excluded = build_stress_profiles(candidates, exercises, bands)
    result = select_exercises(profiles, initial_stress)

    logger.info(
        "generate_day: user=%s candidates=%d excluded=%d picked=%d has_stress=%s",
        user_id, len(ids), len(excluded), len(result), bool(initial_stress),
    )
    return result


def load_candidates(db: OrmSession, limit: int = ALLOW_LIST_LIMIT) -> List[Candidate]:
    """Active allow-list rows, lowest priority_order first (NULLs last)."""
    with upstream("allow-list lookup"):
        rows = (
            db.query(AIRecommendedExercise)
            .filter(AIRecommendedExercise.is_active.is_(True))
            .order_by(
                AIRecommendedExercise.priority_order.is_(None),
                AIRecommendedExercise.priority_order.asc(),
                AIRecommendedExercise.exercise_id.asc(),
            )
            .limit(limit)
            .all()
        )
    return [Candidate(r.exercise_id, r.priority_order) for r in rows]


def get_muscle_stress(
    db: OrmSession, user_id: str, start: date, end: date
) -> MuscleStressMap:
    """Summed daily stress per muscle over [start, end] (inclusive)."""
    with upstream("muscle stress lookup"):
        rows = (
            db.query(DailyMuscleStress.muscle_key, func.sum(DailyMuscleStress.stress))
            .filter(DailyMuscleStress.user_id == user_id)
            .filter(DailyMuscleStress.date >= start)
            .filter(DailyMuscleStress.date <= end)
            .group_by(DailyMuscleStress.muscle_key)
            .all()
        )
    return {key: float(total or 0.0) for key, total in rows}


def recent_stress_window(now: Optional[datetime] = None) -> Tuple[date, date]:
    """Calendar days covering the last STRESS_WINDOW_HOURS."""
    now = now or datetime.utcnow()
    start = now - timedelta(hours=STRESS_WINDOW_HOURS)
    return start.date(), now.date()
