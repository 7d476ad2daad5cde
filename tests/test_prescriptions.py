from prescriptions import (
    PrescriptionBand,
    get_band,
    get_bands,
    get_bands_by_mode,
    get_custom_band,
)

from conftest import USER


def test_get_band(db, make_exercise, add_band):
    make_exercise("sq-1")
    add_band("sq-1", experience="intermediate", sets=(3, 5), reps=(8, 12))

    band = get_band(db, "sq-1", "intermediate", "reps")

    assert band == PrescriptionBand(
        exercise_id="sq-1", experience="intermediate", mode="reps",
        sets_min=3, sets_max=5, reps_min=8, reps_max=12,
    )
    assert band.sets_midpoint == 4


def test_missing_band_is_none(db, make_exercise, add_band):
    make_exercise("sq-1")
    add_band("sq-1", experience="beginner")

    assert get_band(db, "sq-1", "advanced", "reps") is None
    assert get_band(db, "sq-1", "beginner", "timed") is None


def test_inactive_band_is_ignored(db, make_exercise, add_band):
    make_exercise("sq-1")
    add_band("sq-1", is_active=False)

    assert get_band(db, "sq-1", "beginner", "reps") is None


def test_inconsistent_band_is_ignored(db, make_exercise, add_band):
    make_exercise("sq-1")
    make_exercise("sq-2")
    add_band("sq-1", sets=(5, 3))
    add_band("sq-2", reps=(12, 8))

    assert get_band(db, "sq-1", "beginner", "reps") is None
    assert get_bands(db, ["sq-1", "sq-2"], "beginner", "reps") == {}


def test_band_without_sets_is_ignored(db, make_exercise, add_band, add_custom):
    make_exercise("sq-1")
    add_band("sq-1", sets=(0, 3))
    add_custom("custom-curl", mode="reps", sets_min=0, sets_max=2, reps_min=10, reps_max=15)

    assert get_band(db, "sq-1", "beginner", "reps") is None
    assert get_custom_band(db, "custom-curl", USER) is None


def test_bands_by_mode_single_lookup(db, make_exercise, add_band):
    make_exercise("sq-1")
    make_exercise("plank", primary=["abs"], is_timed=True)
    make_exercise("ex-9")
    add_band("sq-1")
    add_band("plank", mode="timed", duration=(30, 60))
    # wrong mode for the request, must not leak into the reps map
    add_band("ex-9", mode="timed", duration=(30, 60))

    bands = get_bands_by_mode(db, {"reps": ["sq-1", "ex-9"], "timed": ["plank"]}, "beginner")

    assert set(bands) == {"reps", "timed"}
    assert list(bands["reps"]) == ["sq-1"]
    assert bands["timed"]["plank"].duration_sec_max == 60


def test_bands_by_mode_nothing_requested(db):
    assert get_bands_by_mode(db, {"reps": [], "timed": []}, "beginner") == {"reps": {}, "timed": {}}


def test_custom_band(db, add_custom):
    add_custom("custom-curl", mode="reps", sets_min=2, sets_max=4, reps_min=10, reps_max=15)

    band = get_custom_band(db, "custom-curl", USER)

    assert band.experience == "custom"
    assert (band.sets_min, band.sets_max, band.reps_min, band.reps_max) == (2, 4, 10, 15)


def test_custom_band_incomplete_or_foreign(db, add_custom):
    add_custom("custom-legacy")
    add_custom("custom-half", mode="reps", sets_min=2, sets_max=4)
    add_custom("custom-other", user_id="someone-else", mode="reps",
               sets_min=2, sets_max=4, reps_min=10, reps_max=15)

    assert get_custom_band(db, "custom-legacy", USER) is None
    assert get_custom_band(db, "custom-half", USER) is None
    assert get_custom_band(db, "custom-other", USER) is None
