from typing import Optional

from rest_api import SessionAPI

SAMPLE_EXERCISES = [
    ("Bench Press", "chest", "Olympic Barbell", 120),
    ("Incline Dumbbell Press", "chest", "Dumbbells", 90),
    ("Barbell Row", "back", "Olympic Barbell", 120),
    ("Pull Up", "back", "Bodyweight", 90),
    ("Back Squat", "legs", "Olympic Barbell", 180),
    ("Plank", "core", "None", 60),
]

SAMPLE_TEMPLATE = [
    ("Bench Press", 3, 8, 60.0),
    ("Barbell Row", 3, 8, 50.0),
    ("Pull Up", 3, 6, 0.0),
]


def seed(db_path: str = "workout.db") -> Optional[int]:
    """Insert a small catalog and an upper-body template; returns the template id."""
    api = SessionAPI(db_path=db_path)
    if api.catalog.fetch_all_exercises():
        print("Database already contains exercises")
        return None

    ids = {}
    for name, muscle_group, equipment, rest in SAMPLE_EXERCISES:
        ids[name] = api.catalog.add(name, muscle_group, equipment, rest)

    template_id = api.templates.create("Upper Body")
    for name, sets, reps, weight in SAMPLE_TEMPLATE:
        api.templates.add_exercise(template_id, ids[name], sets, reps, weight)
    print(f"Seed data inserted, template {template_id}")
    return template_id


if __name__ == "__main__":
    seed()
