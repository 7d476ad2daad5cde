"""
Preview a generated training day without saving anything.

Usage:
  python preview_day.py <user_id> [experience]

Shows the picked exercises in order, their targets, and how the simulated
fatigue of each exercise's muscles moves as the day is built.
"""
import sys
from typing import Optional

import pandas as pd

from db import get_session
from exercises import resolve_exercises
from plan import (
    MAX_FATIGUE_PER_MUSCLE,
    SimulatedFatigueState,
    build_stress_profiles,
    generate_day,
    get_muscle_stress,
    load_candidates,
    recent_stress_window,
)
from prescriptions import MODE_REPS, MODE_TIMED, get_bands_by_mode
from progression import count_exercise_history, select_targets_bulk
from services import get_experience_tier


def build_preview(db, user_id: str, experience: Optional[str] = None) -> pd.DataFrame:
    experience = experience or get_experience_tier(db, user_id)
    candidates = load_candidates(db)
    start, end = recent_stress_window()
    stress = get_muscle_stress(db, user_id, start, end)

    picked = generate_day(db, candidates, user_id, experience, stress)
    counts = count_exercise_history(db, user_id, picked)
    targets = {t.exercise_id: t for t in select_targets_bulk(db, picked, user_id, experience, counts).targets}

    # Replay the picks to show the worst muscle fraction before each one
    exercises = resolve_exercises(db, user_id, picked)
    ids_by_mode = {MODE_REPS: [], MODE_TIMED: []}
    for ex in exercises.values():
        ids_by_mode[ex.mode].append(ex.id)
    profiles, _ = build_stress_profiles(
        [c for c in candidates if c.exercise_id in picked],
        exercises,
        get_bands_by_mode(db, ids_by_mode, experience),
    )
    by_id = {p.exercise_id: p for p in profiles}
    sim = SimulatedFatigueState(stress)

    rows = []
    for i, ex_id in enumerate(picked, start=1):
        profile = by_id[ex_id]
        target = targets.get(ex_id)
        rows.append({
            "order": i,
            "exercise": exercises[ex_id].name,
            "mode": exercises[ex_id].mode,
            "sets": target.sets if target else None,
            "reps": target.reps if target else None,
            "duration_sec": target.duration_sec if target else None,
            "zone": sim.zone_for(profile),
            "worst_fatigue_%": round(sim.worst_fraction(profile) * 100, 1),
        })
        sim.register(profile)

    df = pd.DataFrame(rows)
    after = pd.Series(sim.snapshot(), name="stress").sort_values(ascending=False)
    df.attrs["fatigue_after"] = (after / MAX_FATIGUE_PER_MUSCLE * 100).round(1)
    return df


def main():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    user_id = sys.argv[1]
    experience = sys.argv[2] if len(sys.argv) > 2 else None

    with get_session() as db:
        df = build_preview(db, user_id, experience)

    if df.empty:
        print("No exercises could be picked (no prescriptions, or everything is in the red zone).")
        return

    print("=" * 80)
    print(f"DAY PREVIEW for {user_id}")
    print("=" * 80)
    print(df.to_string(index=False))
    print("\nSimulated fatigue after the day (% of ceiling):")
    print(df.attrs["fatigue_after"].head(10).to_string())


if __name__ == "__main__":
    main()
