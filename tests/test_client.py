import os
import sys
import unittest
import pytest
import requests
from fastapi.testclient import TestClient

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from client import AsyncSessionGateway, SessionClient
from errors import GatewayError
from rest_api import SessionAPI
from rest_timer import RestTimer
from session_machine import ExerciseChoice, SessionPhase, WorkoutSessionController
from settings_schema import TrackerSettings
from workout_timer import WorkoutTimer


class RefusingTransport:
    def get(self, url, **kwargs):
        raise requests.ConnectionError("connection refused")


class HtmlResponse:
    status_code = 200
    text = "<html>maintenance</html>"

    def json(self):
        raise ValueError("Expecting value")


class HtmlTransport:
    def get(self, url, **kwargs):
        return HtmlResponse()


def make_client(db_path: str) -> SessionClient:
    api = SessionAPI(db_path=db_path)
    return SessionClient(base_url="http://testserver", http=TestClient(api.app))


def seed_template(client: SessionClient) -> int:
    bench = client.add_catalog_exercise("Bench Press", muscle_group="chest", equipment="Olympic Barbell")
    squat = client.add_catalog_exercise("Squat", muscle_group="legs", equipment="Olympic Barbell")
    client.add_catalog_exercise("Pull Up", muscle_group="back", equipment="Bodyweight", default_rest_sec=60)
    return client.create_template(
        "Short",
        [
            {"exercise_id": bench, "target_sets": 2, "target_reps": 5, "target_weight": 50.0},
            {"exercise_id": squat, "target_sets": 1, "target_reps": 5, "target_weight": 80.0},
        ],
    )


class SessionClientTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_session_client.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.client = make_client(self.db_path)
        self.template_id = seed_template(self.client)

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def test_session_roundtrip(self) -> None:
        self.assertEqual(self.client.health(), {"status": "ok"})
        self.assertEqual([e["name"] for e in self.client.list_exercises("pull")], ["Pull Up"])
        session_id = self.client.start_session(self.template_id)
        log = self.client.log_set(session_id, 1, 1, 50.0, 5, session_exercise_id=1)
        self.client.update_set(session_id, log["id"], 52.5, 5)
        added = self.client.add_session_exercise(session_id, 3, 3, 10, 0.0, order=0)
        self.client.update_session_exercise(session_id, added["id"], target_sets=4)
        self.client.reorder_session_exercises(session_id, [1, 2, added["id"]])

        data = self.client.get_session(session_id)
        self.assertEqual(
            [ex["session_exercise"]["id"] for ex in data["exercises"]], [1, 2, added["id"]]
        )
        self.assertEqual(data["exercises"][2]["session_exercise"]["target_sets"], 4)
        self.assertEqual(data["exercises"][0]["logged_sets"][0]["weight"], 52.5)

        self.client.delete_set(session_id, log["id"])
        self.client.remove_session_exercise(session_id, added["id"])
        self.assertEqual(len(self.client.get_session(session_id)["exercises"]), 2)
        self.assertEqual(self.client.complete_session(session_id, "done")["status"], "completed")

    def test_http_errors_raise_gateway_error(self) -> None:
        with self.assertRaises(GatewayError) as ctx:
            self.client.get_session(42)
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertIn("session not found", str(ctx.exception))

        session_id = self.client.start_session(self.template_id)
        self.client.cancel_session(session_id)
        with self.assertRaises(GatewayError):
            self.client.log_set(session_id, 1, 1, 50.0, 5)

    def test_transport_errors_raise_gateway_error(self) -> None:
        client = SessionClient(http=RefusingTransport())
        with self.assertRaises(GatewayError) as ctx:
            client.health()
        self.assertIsNone(ctx.exception.status_code)

    def test_non_json_body_raises_gateway_error(self) -> None:
        client = SessionClient(http=HtmlTransport())
        with self.assertRaises(GatewayError) as ctx:
            client.health()
        self.assertEqual(ctx.exception.status_code, 200)
        self.assertIn("non-JSON", str(ctx.exception))


@pytest.mark.asyncio
async def test_controller_runs_against_api(tmp_path):
    client = make_client(str(tmp_path / "workout.db"))
    template_id = seed_template(client)
    gateway = AsyncSessionGateway(client)
    session_id = await gateway.start_session(template_id)
    finished = []
    controller = WorkoutSessionController(
        gateway,
        session_id,
        TrackerSettings(auto_advance_delay=0),
        on_finish=lambda: finished.append(True),
        workout_timer=WorkoutTimer(interval=None),
        rest_timer=RestTimer(interval=None),
    )
    assert await controller.load()
    assert [ex.name for ex in controller.exercises] == ["Bench Press", "Squat"]

    controller.switch_exercise(1)
    controller.open_swap_exercise()
    assert await controller.select_exercise(ExerciseChoice(id=3, name="Pull Up"))
    assert [ex.name for ex in controller.exercises] == ["Bench Press", "Pull Up"]
    assert controller.current_exercise.target_sets == 1
    assert controller.current_exercise.rest_seconds == 60

    controller.switch_exercise(0)
    assert await controller.log_set()
    controller.set_log_reps(6)
    assert await controller.log_set()
    assert controller.state.current_index == 1
    assert await controller.log_set()
    assert controller.all_exercises_completed

    assert controller.request_finish()
    assert await controller.confirm_finish("short one")
    assert finished == [True]
    assert controller.state.phase is SessionPhase.finished

    data = client.get_session(session_id)
    assert data["status"] == "completed"
    assert data["notes"] == "short one"
    logged = [s for ex in data["exercises"] for s in ex["logged_sets"]]
    assert [(s["weight"], s["reps"]) for s in logged] == [(50.0, 5), (50.0, 6), (0.0, 5)]
    controller.close()


if __name__ == "__main__":
    unittest.main()
