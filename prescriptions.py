# prescriptions.py
"""
Curated prescription bands keyed by (exercise, experience tier, mode).

There are no synthesized defaults here: if the table has no (active,
consistent) row for a key, the answer is None / a missing map entry and
the caller must not recommend a target for that exercise.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session as OrmSession

from db import ExercisePrescription, UserCustomExercise
from errors import upstream

logger = logging.getLogger(__name__)

MODE_REPS = "reps"
MODE_TIMED = "timed"
MODES = (MODE_REPS, MODE_TIMED)

EXPERIENCE_TIERS = ("beginner", "intermediate", "advanced")


@dataclass(frozen=True)
class PrescriptionBand:
    exercise_id: str
    experience: str
    mode: str
    sets_min: int
    sets_max: int
    reps_min: Optional[int] = None
    reps_max: Optional[int] = None
    duration_sec_min: Optional[int] = None
    duration_sec_max: Optional[int] = None

    @property
    def has_reps(self) -> bool:
        return self.reps_min is not None and self.reps_max is not None

    @property
    def has_duration(self) -> bool:
        return self.duration_sec_min is not None and self.duration_sec_max is not None

    def is_consistent(self) -> bool:
        """min <= max on every populated range, and sets actually present."""
        if self.sets_min is None or self.sets_max is None:
            return False
        if self.sets_min < 1 or self.sets_max < self.sets_min:
            return False
        if self.has_reps and self.reps_max < self.reps_min:
            return False
        if self.has_duration and self.duration_sec_max < self.duration_sec_min:
            return False
        return True

    @property
    def sets_midpoint(self) -> float:
        return (self.sets_min + self.sets_max) / 2


def _band_from_row(row) -> Optional[PrescriptionBand]:
    band = PrescriptionBand(
        exercise_id=row.exercise_id,
        experience=row.experience,
        mode=row.mode,
        sets_min=row.sets_min,
        sets_max=row.sets_max,
        reps_min=row.reps_min,
        reps_max=row.reps_max,
        duration_sec_min=row.duration_sec_min,
        duration_sec_max=row.duration_sec_max,
    )
    if not band.is_consistent():
        logger.warning(
            "Ignoring inconsistent prescription for %s (%s, %s)",
            row.exercise_id, row.experience, row.mode,
        )
        return None
    return band


def get_band(
    db: OrmSession, exercise_id: str, experience: str, mode: str
) -> Optional[PrescriptionBand]:
    """
    Get the curated band for one key.

    Returns:
        PrescriptionBand, or None when no usable row exists (expected state)
    """
    with upstream("prescription lookup"):
        row = (
            db.query(ExercisePrescription)
            .filter(
                ExercisePrescription.exercise_id == exercise_id,
                ExercisePrescription.experience == experience,
                ExercisePrescription.mode == mode,
                ExercisePrescription.is_active.is_(True),
            )
            .first()
        )

    if row is None:
        logger.info("No prescription for %s (%s, %s)", exercise_id, experience, mode)
        return None
    return _band_from_row(row)


def get_bands(
    db: OrmSession, exercise_ids: Iterable[str], experience: str, mode: str
) -> Dict[str, PrescriptionBand]:
    """Bulk variant of get_band. Unresolved ids are simply absent."""
    return get_bands_by_mode(db, {mode: list(exercise_ids)}, experience).get(mode, {})


def get_bands_by_mode(
    db: OrmSession, ids_by_mode: Mapping[str, Iterable[str]], experience: str
) -> Dict[str, Dict[str, PrescriptionBand]]:
    """
    Fetch the band maps for several modes in one round trip.

    Args:
        ids_by_mode: e.g. {"reps": [...], "timed": [...]}
        experience: experience tier

    Returns:
        {mode: {exercise_id: band}} with an entry for every requested mode
    """
    wanted = {mode: list(ids) for mode, ids in ids_by_mode.items()}
    result: Dict[str, Dict[str, PrescriptionBand]] = {mode: {} for mode in wanted}

    clauses = [
        and_(ExercisePrescription.mode == mode, ExercisePrescription.exercise_id.in_(ids))
        for mode, ids in wanted.items()
        if ids
    ]
    if not clauses:
        return result

    with upstream("bulk prescription lookup"):
        rows = (
            db.query(ExercisePrescription)
            .filter(
                ExercisePrescription.experience == experience,
                ExercisePrescription.is_active.is_(True),
                or_(*clauses),
            )
            .all()
        )

    for row in rows:
        band = _band_from_row(row)
        if band is not None:
            result[row.mode][row.exercise_id] = band

    for mode, ids in wanted.items():
        missing = [i for i in ids if i not in result[mode]]
        if missing:
            logger.info(
                "No %s prescription (%s) for %d of %d exercises: %s",
                mode, experience, len(missing), len(ids), ", ".join(missing),
            )
    return result


def get_custom_band(
    db: OrmSession, custom_exercise_id: str, user_id: str
) -> Optional[PrescriptionBand]:
    """
    Custom exercises carry their own band on the custom row. Legacy rows
    without a complete band count as "no band", same as a missing
    prescription.
    """
    with upstream("custom band lookup"):
        custom = (
            db.query(UserCustomExercise)
            .filter(
                UserCustomExercise.id == custom_exercise_id,
                UserCustomExercise.user_id == user_id,
            )
            .first()
        )
    if custom is None or custom.mode not in MODES:
        return None

    band = PrescriptionBand(
        exercise_id=custom.id,
        experience="custom",
        mode=custom.mode,
        sets_min=custom.sets_min,
        sets_max=custom.sets_max,
        reps_min=custom.reps_min,
        reps_max=custom.reps_max,
        duration_sec_min=custom.duration_sec_min,
        duration_sec_max=custom.duration_sec_max,
    )
    if not band.is_consistent():
        return None
    if custom.mode == MODE_REPS and not band.has_reps:
        return None
    if custom.mode == MODE_TIMED and not band.has_duration:
        return None
    return band
