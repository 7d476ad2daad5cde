from datetime import date, datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from db import AIRecommendedExercise, DailyMuscleStress
from errors import UpstreamUnavailable
from exercises import EffectiveExercise
from plan import (
    Candidate,
    ExerciseStressProfile,
    SimulatedFatigueState,
    base_priorities,
    generate_day,
    get_muscle_stress,
    load_candidates,
    muscle_weights,
    recent_stress_window,
    round_half_up,
    score_for,
    select_exercises,
    zone_for_fraction,
)

from conftest import USER


def profile(ex_id, muscle="quads", sets=3, priority=1.0):
    return ExerciseStressProfile(ex_id, sets, {muscle: 1.0}, priority)


# ------- pure pieces -------

def test_zones():
    assert zone_for_fraction(0.0) == "green"
    assert zone_for_fraction(0.5) == "green"
    assert zone_for_fraction(0.51) == "yellow"
    assert zone_for_fraction(0.85) == "yellow"
    assert zone_for_fraction(0.86) == "red"


def test_score_for():
    p = profile("a", priority=4.0)
    assert score_for(p, "green") == 4.0
    assert score_for(p, "yellow") == 2.0
    assert score_for(p, "red") is None


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(4.0) == 4


def test_muscle_weights_are_normalized():
    ex = EffectiveExercise(
        id="sq-1", name="Squat", source="master",
        primary_muscles=("quads", "glutes"),
        implicit_hits={"hamstrings": 0.5, "calves": 0.0},
    )
    weights = muscle_weights(ex)

    assert set(weights) == {"quads", "glutes", "hamstrings"}
    assert weights["quads"] == pytest.approx(0.4)
    assert weights["hamstrings"] == pytest.approx(0.2)
    assert sum(weights.values()) == pytest.approx(1.0)

    assert muscle_weights(EffectiveExercise(id="x", name="x", source="master")) == {}


def test_base_priorities():
    priorities = base_priorities([Candidate("a", 1), Candidate("b", 2), Candidate("c")])
    assert priorities == {"a": 2.0, "b": 1.0, "c": 1.0}


def test_simulated_state_copies_snapshot():
    initial = {"quads": 1.0}
    sim = SimulatedFatigueState(initial)
    sim.register(profile("a", sets=2))

    assert initial == {"quads": 1.0}
    assert sim.snapshot()["quads"] == pytest.approx(2.4)


# ------- greedy selection -------

def test_red_muscle_blocks_everything():
    assert select_exercises([profile("a"), profile("b")], {"quads": 9.5}) == []


def test_fatigue_builds_up_within_a_run():
    profiles = [profile(f"ex-{i}", sets=4) for i in range(6)]

    # 4 sets add 2.8 each: 0 -> 2.8 -> 5.6 -> 8.4 (yellow, still allowed) -> 11.2
    assert select_exercises(profiles) == ["ex-0", "ex-1", "ex-2", "ex-3"]


def test_never_picks_a_red_candidate():
    profiles = [profile("legs", "quads", priority=5.0), profile("chest", "chest", priority=1.0)]

    assert select_exercises(profiles, {"quads": 8.6}) == ["chest"]


def test_yellow_penalty_reorders():
    profiles = [profile("legs", "quads", priority=3.0), profile("chest", "chest", priority=2.0)]

    # legs: yellow, 3 - 1.5 = 1.5 < 2
    assert select_exercises(profiles, {"quads": 6.0}) == ["chest", "legs"]
    assert select_exercises(profiles) == ["legs", "chest"]


def test_ties_go_to_first_seen():
    profiles = [profile("b", "chest"), profile("a", "lats"), profile("c", "quads")]
    assert select_exercises(profiles) == ["b", "a", "c"]


def test_selection_is_deterministic_and_leaves_input_alone():
    profiles = [profile(f"ex-{i}", muscle, priority=float(i % 3 + 1))
                for i, muscle in enumerate(["quads", "chest", "quads", "lats", "chest", "quads"])]
    stress = {"quads": 3.0, "chest": 1.0}

    first = select_exercises(profiles, stress)
    assert select_exercises(profiles, stress) == first
    assert stress == {"quads": 3.0, "chest": 1.0}


def test_more_initial_stress_never_means_more_picks():
    profiles = [profile(f"ex-{i}", "quads", sets=3) for i in range(8)]
    counts = [len(select_exercises(profiles, {"quads": s})) for s in (0.0, 2.0, 4.0, 6.0, 8.0, 9.0)]
    assert counts == sorted(counts, reverse=True)


# ------- db-backed -------

def test_generate_day_excludes_missing_band(db, make_exercise, add_band):
    make_exercise("sq-1", primary=["quads"], priority=1)
    make_exercise("ex-9", primary=["abs"], is_timed=True, priority=2)
    make_exercise("bench", primary=["chest"], priority=3)
    add_band("sq-1", experience="beginner")
    add_band("ex-9", experience="beginner", mode="reps")
    add_band("bench", experience="beginner")

    candidates = load_candidates(db)
    picked = generate_day(db, candidates, USER, "beginner", {})

    assert picked == ["sq-1", "bench"]


def test_generate_day_respects_recent_stress(db, make_exercise, add_band):
    make_exercise("sq-1", primary=["quads"], priority=1)
    make_exercise("bench", primary=["chest"], priority=2)
    add_band("sq-1")
    add_band("bench")

    picked = generate_day(db, load_candidates(db), USER, "beginner", {"quads": 9.0})

    assert picked == ["bench"]


def test_load_candidates_order(db, make_exercise):
    make_exercise("c", priority=None)
    make_exercise("b", priority=2)
    make_exercise("a", priority=1)
    make_exercise("off")
    db.add(AIRecommendedExercise(exercise_id="off", priority_order=0, is_active=False))
    db.add(AIRecommendedExercise(exercise_id="c", priority_order=None))
    db.commit()

    assert [c.exercise_id for c in load_candidates(db)] == ["a", "b", "c"]
    assert load_candidates(db, limit=1) == [Candidate("a", 1)]


def test_get_muscle_stress(db):
    db.add_all([
        DailyMuscleStress(user_id=USER, date=date(2026, 10, 17), muscle_key="quads", stress=1.5),
        DailyMuscleStress(user_id=USER, date=date(2026, 10, 18), muscle_key="quads", stress=2.0),
        DailyMuscleStress(user_id=USER, date=date(2026, 10, 18), muscle_key="chest", stress=0.7),
        DailyMuscleStress(user_id=USER, date=date(2026, 10, 10), muscle_key="quads", stress=9.0),
        DailyMuscleStress(user_id="someone-else", date=date(2026, 10, 18), muscle_key="quads", stress=9.0),
    ])
    db.commit()

    stress = get_muscle_stress(db, USER, date(2026, 10, 17), date(2026, 10, 19))

    assert stress == {"quads": pytest.approx(3.5), "chest": pytest.approx(0.7)}


def test_recent_stress_window():
    assert recent_stress_window(datetime(2026, 10, 19, 8, 30)) == (date(2026, 10, 17), date(2026, 10, 19))


def test_generate_day_propagates_database_outage():
    db = MagicMock()
    db.query.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))

    with pytest.raises(UpstreamUnavailable):
        generate_day(db, [Candidate("sq-1", 1), Candidate("bench", 2)], USER, "beginner", {})
