from db import (
    AIRecommendedExercise,
    Exercise,
    ExercisePrescription,
    Muscle,
    get_session,
    init_db,
)

# (key, display name, group, sort order)
CANONICAL_MUSCLES = [
    ("chest", "Chest", "upper_body_push", 1),
    ("upper_chest", "Upper Chest", "upper_body_push", 2),
    ("lower_chest", "Lower Chest", "upper_body_push", 3),
    ("anterior_deltoids", "Front Delts", "upper_body_push", 4),
    ("lateral_deltoids", "Side Delts", "upper_body_push", 5),
    ("posterior_deltoids", "Rear Delts", "upper_body_push", 6),
    ("triceps", "Triceps", "upper_body_push", 7),
    ("lats", "Lats", "upper_body_pull", 1),
    ("upper_back", "Upper Back", "upper_body_pull", 2),
    ("lower_back", "Lower Back", "upper_body_pull", 3),
    ("traps", "Traps", "upper_body_pull", 4),
    ("biceps", "Biceps", "upper_body_pull", 5),
    ("forearms", "Forearms", "upper_body_pull", 6),
    ("abs", "Abs", "core", 1),
    ("obliques", "Obliques", "core", 2),
    ("quads", "Quadriceps", "lower_body_front", 1),
    ("hip_flexors", "Hip Flexors", "lower_body_front", 2),
    ("hamstrings", "Hamstrings", "lower_body_back", 1),
    ("glutes", "Glutes", "lower_body_back", 2),
    ("calves", "Calves", "lower_body_back", 3),
    ("soleus", "Soleus", "lower_body_back", 4),
    ("rotator_cuff", "Rotator Cuff", "stabilizers", 1),
    ("serratus_anterior", "Serratus Anterior", "stabilizers", 2),
    ("transverse_abdominis", "Transverse Abdominis", "stabilizers", 3),
    ("glute_medius", "Glute Medius", "stabilizers", 4),
    ("glute_minimus", "Glute Minimus", "stabilizers", 5),
    ("piriformis", "Piriformis", "stabilizers", 6),
    ("tibialis_anterior", "Tibialis Anterior", "stabilizers", 7),
]

# Small starter catalog: id -> exercise fields
SAMPLE_EXERCISES = {
    "back-squat": dict(
        name="Barbell Back Squat", primary_muscles=["quads", "glutes"],
        implicit_hits={"hamstrings": 0.4, "lower_back": 0.3, "abs": 0.2},
        movement_pattern="squat", equipment_needed=["barbell", "rack"],
    ),
    "romanian-deadlift": dict(
        name="Romanian Deadlift", primary_muscles=["hamstrings", "glutes"],
        implicit_hits={"lower_back": 0.5, "forearms": 0.2},
        movement_pattern="hinge", equipment_needed=["barbell"],
    ),
    "bench-press": dict(
        name="Barbell Bench Press", primary_muscles=["chest"],
        implicit_hits={"anterior_deltoids": 0.5, "triceps": 0.5},
        movement_pattern="horizontal_push", equipment_needed=["barbell", "bench"],
    ),
    "lat-pulldown": dict(
        name="Lat Pulldown", primary_muscles=["lats"],
        implicit_hits={"biceps": 0.4, "upper_back": 0.3},
        movement_pattern="vertical_pull", equipment_needed=["cable"],
    ),
    "overhead-press": dict(
        name="Overhead Press", primary_muscles=["anterior_deltoids"],
        implicit_hits={"lateral_deltoids": 0.4, "triceps": 0.4, "upper_chest": 0.2},
        movement_pattern="vertical_push", equipment_needed=["barbell"],
    ),
    "plank": dict(
        name="Plank", primary_muscles=["abs", "transverse_abdominis"],
        implicit_hits={"obliques": 0.3}, is_timed=True,
        movement_pattern="anti_extension", equipment_needed=[],
    ),
}

# (sets_min, sets_max, reps_min, reps_max, dur_min, dur_max) per tier
SAMPLE_BANDS = {
    "beginner": (2, 3, 8, 12, 20, 40),
    "intermediate": (3, 5, 8, 12, 30, 60),
    "advanced": (4, 6, 6, 10, 45, 90),
}


def main():
    init_db()
    with get_session() as db:
        muscles_created = 0
        for key, display_name, group, sort_order in CANONICAL_MUSCLES:
            if db.query(Muscle).filter(Muscle.key == key).first() is None:
                db.add(Muscle(key=key, display_name=display_name, group=group, sort_order=sort_order))
                muscles_created += 1

        if muscles_created > 0:
            db.commit()
            print(f"Created {muscles_created} canonical muscles.")
        else:
            print("All canonical muscles already exist.")

        if db.query(Exercise).count() > 0:
            print("Exercise catalog already seeded.")
            return

        for priority, (ex_id, fields) in enumerate(SAMPLE_EXERCISES.items(), start=1):
            exercise = Exercise(id=ex_id, **fields)
            db.add(exercise)
            db.flush()

            mode = "timed" if exercise.is_timed else "reps"
            for tier, (s_min, s_max, r_min, r_max, d_min, d_max) in SAMPLE_BANDS.items():
                db.add(ExercisePrescription(
                    exercise_id=ex_id,
                    experience=tier,
                    mode=mode,
                    sets_min=s_min,
                    sets_max=s_max,
                    reps_min=r_min if mode == "reps" else None,
                    reps_max=r_max if mode == "reps" else None,
                    duration_sec_min=d_min if mode == "timed" else None,
                    duration_sec_max=d_max if mode == "timed" else None,
                    source_notes="starter band",
                ))
            db.add(AIRecommendedExercise(exercise_id=ex_id, priority_order=priority))

        db.commit()
        print(f"Seeded {len(SAMPLE_EXERCISES)} exercises with prescriptions and allow-list entries.")


if __name__ == "__main__":
    main()
