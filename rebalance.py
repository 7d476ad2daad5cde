# rebalance.py
"""
Muscle coverage gap detection over the last few completed sessions.

Advisory only: any failure (lookup or malformed data) is logged and turned into an
untriggered result instead of propagating.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from sqlalchemy.orm import Session as OrmSession

from db import Muscle, SessionExercise, WorkoutSession
from errors import upstream
from exercises import resolve_exercises

logger = logging.getLogger(__name__)

# ------- constants -------

N_SESSIONS_LOOKBACK = 6     # recent completed sessions analysed
MIN_GAP_MUSCLES = 1         # missed muscles needed to trigger
MAX_MUSCLES_IN_REASON = 5


@dataclass
class RebalanceResult:
    triggered: bool = False
    missed_muscles: List[str] = field(default_factory=list)
    reasons: List[str] = field(default_factory=list)


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


def _reason(missed: List[str], session_count: int) -> str:
    shown = ", ".join(missed[:MAX_MUSCLES_IN_REASON])
    if len(missed) > MAX_MUSCLES_IN_REASON:
        shown += "..."
    return (
        f"{_plural(len(missed), 'muscle')} not hit in last "
        f"{_plural(session_count, 'session')}: {shown}"
    )


def _detect(
    db: OrmSession, user_id: str, lookback_sessions: int, min_gap_muscles: int
) -> RebalanceResult:
    with upstream("recent sessions lookup"):
        sessions = (
            db.query(WorkoutSession.id)
            .filter(WorkoutSession.user_id == user_id)
            .filter(WorkoutSession.status == "completed")
            .order_by(WorkoutSession.started_at.desc())
            .limit(lookback_sessions)
            .all()
        )
    if not sessions:
        return RebalanceResult()

    session_ids = [s.id for s in sessions]
    with upstream("session exercises lookup"):
        performed = (
            db.query(SessionExercise.exercise_id, SessionExercise.custom_exercise_id)
            .filter(SessionExercise.session_id.in_(session_ids))
            .all()
        )
    if not performed:
        return RebalanceResult()

    # master and custom ids share one bulk resolve (it partitions them)
    ids = [ex_id or custom_id for ex_id, custom_id in performed if ex_id or custom_id]
    hit = set()
    for exercise in resolve_exercises(db, user_id, ids).values():
        hit |= exercise.muscle_keys

    with upstream("canonical muscles lookup"):
        muscles = (
            db.query(Muscle.key)
            .filter(Muscle.is_active.is_(True))
            .order_by(Muscle.group, Muscle.sort_order, Muscle.key)
            .all()
        )
    if not muscles:
        return RebalanceResult()

    missed = [m.key for m in muscles if m.key not in hit]
    if len(missed) < min_gap_muscles:
        return RebalanceResult(missed_muscles=missed)

    return RebalanceResult(
        triggered=True,
        missed_muscles=missed,
        reasons=[_reason(missed, len(sessions))],
    )


def detect_gaps(
    db: OrmSession,
    user_id: str,
    lookback_sessions: int = N_SESSIONS_LOOKBACK,
    min_gap_muscles: int = MIN_GAP_MUSCLES,
) -> RebalanceResult:
    """
    Which canonical muscles weren't hit (primary or implicit) in the last
    `lookback_sessions` completed sessions?

    Triggered iff at least `min_gap_muscles` were missed. Fewer sessions
    than requested is fine; zero sessions is never triggered.
    """
    try:
        result = _detect(db, user_id, lookback_sessions, min_gap_muscles)
    except Exception as e:
        # advisory: bad rows and outages both end up as "not triggered"
        logger.warning("Rebalance check failed for user %s, ignoring: %r", user_id, e)
        return RebalanceResult()

    logger.info(
        "detect_gaps: user=%s triggered=%s missed=%d",
        user_id, result.triggered, len(result.missed_muscles),
    )
    return result
