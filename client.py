import asyncio
import logging
from typing import Any, Optional, Protocol

import requests

from errors import GatewayError

logger = logging.getLogger(__name__)


class SessionGateway(Protocol):
    """Awaitable remote operations the session controller relies on."""

    async def get_session(self, session_id: int) -> dict: ...

    async def log_set(
        self,
        session_id: int,
        exercise_id: int,
        set_number: int,
        weight: float,
        reps: int,
        session_exercise_id: Optional[int] = None,
    ) -> dict: ...

    async def update_set(
        self, session_id: int, set_log_id: int, weight: float, reps: int
    ) -> dict: ...

    async def delete_set(self, session_id: int, set_log_id: int) -> dict: ...

    async def add_session_exercise(
        self,
        session_id: int,
        exercise_id: int,
        target_sets: int,
        target_reps: Optional[int],
        target_weight: Optional[float],
        order: Optional[int] = None,
    ) -> dict: ...

    async def remove_session_exercise(
        self, session_id: int, session_exercise_id: int
    ) -> dict: ...

    async def update_session_exercise(
        self, session_id: int, session_exercise_id: int, **targets: Any
    ) -> dict: ...

    async def reorder_session_exercises(
        self, session_id: int, session_exercise_ids: list[int]
    ) -> dict: ...

    async def complete_session(
        self, session_id: int, notes: Optional[str] = None
    ) -> dict: ...

    async def cancel_session(self, session_id: int) -> dict: ...


class SessionClient:
    """Simple REST client for the workout session API.

    ``http`` defaults to the :mod:`requests` module; any object exposing
    ``get``/``post``/``put``/``delete`` with the same signature works, which
    lets tests hand in a FastAPI ``TestClient``.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: float = 10.0,
        http: Any = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = http or requests

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{path}"
        if self.http is requests:
            kwargs.setdefault("timeout", self.timeout)
        try:
            resp = getattr(self.http, method)(url, **kwargs)
        except requests.RequestException as e:
            raise GatewayError(f"{method.upper()} {path} failed: {e}") from e
        if resp.status_code >= 400:
            try:
                detail = resp.json().get("detail", resp.text)
            except ValueError:
                detail = resp.text
            raise GatewayError(
                f"{method.upper()} {path} returned {resp.status_code}: {detail}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise GatewayError(
                f"{method.upper()} {path} returned a non-JSON body", status_code=resp.status_code
            ) from e

    def health(self) -> dict:
        return self._request("get", "/health")

    def list_exercises(self, search: Optional[str] = None) -> list[dict]:
        params = {"search": search} if search else None
        return self._request("get", "/exercises", params=params)

    def add_catalog_exercise(self, name: str, **fields: Any) -> int:
        return self._request("post", "/exercises", json={"name": name, **fields})["id"]

    def create_template(self, name: str, exercises: list[dict]) -> int:
        return self._request(
            "post", "/templates", json={"name": name, "exercises": exercises}
        )["id"]

    def start_session(self, template_id: Optional[int] = None) -> int:
        body = {"template_id": template_id} if template_id is not None else {}
        return self._request("post", "/workout-sessions/start", json=body)["id"]

    def get_session(self, session_id: int) -> dict:
        return self._request("get", f"/workout-sessions/{session_id}")

    def log_set(
        self,
        session_id: int,
        exercise_id: int,
        set_number: int,
        weight: float,
        reps: int,
        session_exercise_id: Optional[int] = None,
    ) -> dict:
        body = {
            "exercise_id": exercise_id,
            "set_number": set_number,
            "weight": weight,
            "reps": reps,
        }
        if session_exercise_id is not None:
            body["session_exercise_id"] = session_exercise_id
        return self._request("post", f"/workout-sessions/{session_id}/sets", json=body)

    def update_set(self, session_id: int, set_log_id: int, weight: float, reps: int) -> dict:
        return self._request(
            "put",
            f"/workout-sessions/{session_id}/sets/{set_log_id}",
            json={"weight": weight, "reps": reps},
        )

    def delete_set(self, session_id: int, set_log_id: int) -> dict:
        return self._request("delete", f"/workout-sessions/{session_id}/sets/{set_log_id}")

    def add_session_exercise(
        self,
        session_id: int,
        exercise_id: int,
        target_sets: int,
        target_reps: Optional[int],
        target_weight: Optional[float],
        order: Optional[int] = None,
    ) -> dict:
        body = {
            "exercise_id": exercise_id,
            "target_sets": target_sets,
            "target_reps": target_reps,
            "target_weight": target_weight,
        }
        if order is not None:
            body["order"] = order
        return self._request("post", f"/workout-sessions/{session_id}/exercises", json=body)

    def remove_session_exercise(self, session_id: int, session_exercise_id: int) -> dict:
        return self._request(
            "delete", f"/workout-sessions/{session_id}/exercises/{session_exercise_id}"
        )

    def update_session_exercise(
        self, session_id: int, session_exercise_id: int, **targets: Any
    ) -> dict:
        return self._request(
            "put",
            f"/workout-sessions/{session_id}/exercises/{session_exercise_id}",
            json=targets,
        )

    def reorder_session_exercises(
        self, session_id: int, session_exercise_ids: list[int]
    ) -> dict:
        return self._request(
            "post",
            f"/workout-sessions/{session_id}/exercises/reorder",
            json={"exercise_ids": list(session_exercise_ids)},
        )

    def complete_session(self, session_id: int, notes: Optional[str] = None) -> dict:
        body = {"notes": notes} if notes else {}
        return self._request("post", f"/workout-sessions/{session_id}/complete", json=body)

    def cancel_session(self, session_id: int) -> dict:
        return self._request("delete", f"/workout-sessions/{session_id}/cancel")


class AsyncSessionGateway:
    """Runs :class:`SessionClient` calls in a worker thread so they can be awaited."""

    def __init__(self, client: SessionClient) -> None:
        self.client = client

    async def _call(self, name: str, *args: Any, **kwargs: Any) -> Any:
        logger.debug("Gateway call %s args=%s kwargs=%s", name, args, kwargs)
        return await asyncio.to_thread(getattr(self.client, name), *args, **kwargs)

    async def list_exercises(self, search: Optional[str] = None) -> list[dict]:
        return await self._call("list_exercises", search)

    async def start_session(self, template_id: Optional[int] = None) -> int:
        return await self._call("start_session", template_id)

    async def get_session(self, session_id: int) -> dict:
        return await self._call("get_session", session_id)

    async def log_set(
        self,
        session_id: int,
        exercise_id: int,
        set_number: int,
        weight: float,
        reps: int,
        session_exercise_id: Optional[int] = None,
    ) -> dict:
        return await self._call(
            "log_set", session_id, exercise_id, set_number, weight, reps, session_exercise_id
        )

    async def update_set(self, session_id: int, set_log_id: int, weight: float, reps: int) -> dict:
        return await self._call("update_set", session_id, set_log_id, weight, reps)

    async def delete_set(self, session_id: int, set_log_id: int) -> dict:
        return await self._call("delete_set", session_id, set_log_id)

    async def add_session_exercise(
        self,
        session_id: int,
        exercise_id: int,
        target_sets: int,
        target_reps: Optional[int],
        target_weight: Optional[float],
        order: Optional[int] = None,
    ) -> dict:
        return await self._call(
            "add_session_exercise",
            session_id,
            exercise_id,
            target_sets,
            target_reps,
            target_weight,
            order,
        )

    async def remove_session_exercise(self, session_id: int, session_exercise_id: int) -> dict:
        return await self._call("remove_session_exercise", session_id, session_exercise_id)

    async def update_session_exercise(
        self, session_id: int, session_exercise_id: int, **targets: Any
    ) -> dict:
        return await self._call(
            "update_session_exercise", session_id, session_exercise_id, **targets
        )

    async def reorder_session_exercises(
        self, session_id: int, session_exercise_ids: list[int]
    ) -> dict:
        return await self._call("reorder_session_exercises", session_id, session_exercise_ids)

    async def complete_session(self, session_id: int, notes: Optional[str] = None) -> dict:
        return await self._call("complete_session", session_id, notes)

    async def cancel_session(self, session_id: int) -> dict:
        return await self._call("cancel_session", session_id)
