# exercises.py
"""
Exercise resolver: merges the master catalog with a user's private data.

Effective view = master defaults ⊕ non-null overrides. A custom exercise
(no master counterpart) is used as-is. The merged view is computed per
request and never persisted.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session as OrmSession

from db import Exercise, UserCustomExercise, UserExerciseOverride
from errors import InvalidArgument, NotFound, upstream

logger = logging.getLogger(__name__)

SOURCE_MASTER = "master"
SOURCE_CUSTOM = "custom"
SOURCE_OVERRIDE = "override"


@dataclass(frozen=True)
class EffectiveExercise:
    id: str
    name: str
    source: str
    primary_muscles: Tuple[str, ...] = ()
    implicit_hits: Dict[str, float] = field(default_factory=dict)
    is_timed: bool = False
    density_score: Optional[float] = None
    description: Optional[str] = None
    secondary_muscles: Tuple[str, ...] = ()
    is_unilateral: bool = False
    setup_buffer_sec: Optional[int] = None
    avg_time_per_set_sec: Optional[int] = None
    equipment: Tuple[str, ...] = ()
    movement_pattern: Optional[str] = None
    tempo_category: Optional[str] = None

    @property
    def mode(self) -> str:
        return "timed" if self.is_timed else "reps"

    @property
    def muscle_keys(self) -> set:
        """Every muscle this exercise touches (primary + implicit)."""
        return set(self.primary_muscles) | set(self.implicit_hits)


# ------- helpers -------

def _muscle_tuple(values) -> Tuple[str, ...]:
    # keep first-seen order, drop blanks / duplicates
    seen = []
    for m in values or []:
        if m and m not in seen:
            seen.append(m)
    return tuple(seen)


def _hits(values) -> Dict[str, float]:
    return {k: float(v) for k, v in (values or {}).items() if k}


def _pick(override_value, master_value):
    """Override wins only when it is set. False / 0 are real overrides."""
    return master_value if override_value is None else override_value


def merge_override(
    master: Exercise, override: Optional[UserExerciseOverride]
) -> EffectiveExercise:
    """
    Reducer over the overridable fields. Adding an overridable field means
    adding one line here (and the column on UserExerciseOverride).
    """
    o = override or UserExerciseOverride()
    return EffectiveExercise(
        id=master.id,
        name=master.name,
        source=SOURCE_OVERRIDE if override is not None else SOURCE_MASTER,
        primary_muscles=_muscle_tuple(_pick(o.primary_muscles_override, master.primary_muscles)),
        implicit_hits=_hits(_pick(o.implicit_hits_override, master.implicit_hits)),
        is_timed=bool(_pick(o.is_timed_override, master.is_timed)),
        density_score=_pick(o.density_score_override, master.density_score),
        description=master.description,
        secondary_muscles=_muscle_tuple(master.secondary_muscles),
        is_unilateral=bool(_pick(o.is_unilateral_override, master.is_unilateral)),
        setup_buffer_sec=_pick(o.setup_buffer_sec_override, master.setup_buffer_sec),
        avg_time_per_set_sec=_pick(o.avg_time_per_set_sec_override, master.avg_time_per_set_sec),
        equipment=tuple(master.equipment_needed or ()),
        movement_pattern=master.movement_pattern,
        tempo_category=master.tempo_category,
    )


def from_custom(custom: UserCustomExercise) -> EffectiveExercise:
    return EffectiveExercise(
        id=custom.id,
        name=custom.name,
        source=SOURCE_CUSTOM,
        primary_muscles=_muscle_tuple(custom.primary_muscles),
        implicit_hits=_hits(custom.implicit_hits),
        is_timed=bool(custom.is_timed),
        density_score=custom.density_score,
        description=custom.description,
        secondary_muscles=_muscle_tuple(custom.secondary_muscles),
        is_unilateral=bool(custom.is_unilateral),
        setup_buffer_sec=custom.setup_buffer_sec,
        avg_time_per_set_sec=custom.avg_time_per_set_sec,
        equipment=tuple(custom.equipment_needed or ()),
        movement_pattern=custom.movement_pattern,
        tempo_category=custom.tempo_category,
    )


# ------- main API -------

def resolve_exercise(
    db: OrmSession,
    user_id: str,
    exercise_id: Optional[str] = None,
    custom_exercise_id: Optional[str] = None,
) -> EffectiveExercise:
    """
    Resolve one exercise reference into its effective view.

    Exactly one of exercise_id / custom_exercise_id must be given.

    Raises:
        InvalidArgument: both or neither reference supplied
        NotFound: master record missing, or custom record missing / not owned
        UpstreamUnavailable: database unreachable
    """
    if bool(exercise_id) == bool(custom_exercise_id):
        raise InvalidArgument("Exactly one of exercise_id or custom_exercise_id must be provided")

    if custom_exercise_id:
        with upstream("custom exercise lookup"):
            custom = (
                db.query(UserCustomExercise)
                .filter(
                    UserCustomExercise.id == custom_exercise_id,
                    UserCustomExercise.user_id == user_id,
                )
                .first()
            )
        if custom is None:
            raise NotFound(f"Custom exercise {custom_exercise_id} not found for user {user_id}")
        return from_custom(custom)

    with upstream("master exercise lookup"):
        master = db.query(Exercise).filter(Exercise.id == exercise_id).first()
        if master is None:
            raise NotFound(f"Exercise {exercise_id} not found")

        # No override row is the normal case
        override = (
            db.query(UserExerciseOverride)
            .filter(
                UserExerciseOverride.exercise_id == exercise_id,
                UserExerciseOverride.user_id == user_id,
            )
            .first()
        )
    return merge_override(master, override)


def resolve_exercises(
    db: OrmSession, user_id: str, exercise_ids: Iterable[str]
) -> Dict[str, EffectiveExercise]:
    """
    Bulk resolve in three round trips (custom, master, overrides).

    Ids owned by the user as custom exercises resolve to the custom record;
    the rest go through master + optional override. Ids that resolve to
    nothing are dropped (each drop is logged). The returned dict keeps the
    order of the requested ids.
    """
    requested: List[str] = []
    for ex_id in exercise_ids:
        if ex_id and ex_id not in requested:
            requested.append(ex_id)
    if not requested:
        return {}

    with upstream("bulk exercise lookup"):
        customs = (
            db.query(UserCustomExercise)
            .filter(
                UserCustomExercise.user_id == user_id,
                UserCustomExercise.id.in_(requested),
            )
            .all()
        )
        custom_map = {c.id: c for c in customs}

        master_ids = [i for i in requested if i not in custom_map]
        masters = (
            db.query(Exercise).filter(Exercise.id.in_(master_ids)).all()
            if master_ids else []
        )
        master_map = {m.id: m for m in masters}

        overrides = (
            db.query(UserExerciseOverride)
            .filter(
                UserExerciseOverride.user_id == user_id,
                UserExerciseOverride.exercise_id.in_(list(master_map)),
            )
            .all()
            if master_map else []
        )
    override_map = {o.exercise_id: o for o in overrides}

    resolved: Dict[str, EffectiveExercise] = {}
    for ex_id in requested:
        if ex_id in custom_map:
            resolved[ex_id] = from_custom(custom_map[ex_id])
        elif ex_id in master_map:
            resolved[ex_id] = merge_override(master_map[ex_id], override_map.get(ex_id))
        else:
            logger.info("Dropping unresolvable exercise %s for user %s", ex_id, user_id)

    logger.debug(
        "resolve_exercises: requested=%d resolved=%d custom=%d overrides=%d",
        len(requested), len(resolved), len(custom_map), len(override_map),
    )
    return resolved
