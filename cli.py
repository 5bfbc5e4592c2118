import argparse
import asyncio
import logging
from typing import Optional

from client import AsyncSessionGateway, SessionClient
from config import load_settings
from rest_api import SessionAPI
from seed_sample_data import seed
from session_machine import ExerciseChoice, Menu, WorkoutSessionController
from session_mapper import format_weight
from settings_schema import TrackerSettings

logger = logging.getLogger(__name__)

HELP = """Commands:
  log [weight] [reps]      log the current set
  edit <n> [weight] [reps] edit logged set n of the current exercise
  add-set / remove-set <n> change the number of sets
  add <exercise id>        add an exercise to the workout
  swap <exercise id>       replace the current exercise
  remove-exercise          remove the current exercise
  view                     show details of the current exercise
  next / prev / goto <n>   move between exercises
  rest / rest +<s> / rest -<s> / rest stop
  finish [notes] / cancel / quit"""


def render(controller: WorkoutSessionController, unit: str = "kg") -> str:
    """Return a plain-text view of the controller's current exercise."""
    exercise = controller.current_exercise
    if exercise is None:
        return "No exercises in this workout"
    lines = [
        f"[{controller.state.current_index + 1}/{len(controller.exercises)}] "
        f"{exercise.name} ({exercise.muscle_group})  {controller.formatted_duration}"
    ]
    current = controller.current_set
    for number, s in enumerate(exercise.sets, start=1):
        marker = ">" if current is not None and s.id == current.id else " "
        status = "x" if s.completed else " "
        weight = f"{format_weight(s.weight)} {unit} x " if exercise.weight_loggable else ""
        lines.append(f" {marker}[{status}] set {number}: {weight}{s.reps}")
    if controller.state.rest_timer_active:
        lines.append(f"Rest: {controller.rest_timer.formatted}")
    if controller.state.error:
        lines.append(f"! {controller.state.error}")
    return "\n".join(lines)


def _numbers(args: list[str]) -> tuple[Optional[float], Optional[int]]:
    weight = float(args[0]) if len(args) > 0 else None
    reps = int(args[1]) if len(args) > 1 else None
    return weight, reps


async def dispatch(controller: WorkoutSessionController, line: str) -> bool:
    """Run one interactive command; returns ``False`` when tracking should stop."""
    parts = line.split()
    if not parts:
        return True
    cmd, args = parts[0].lower(), parts[1:]
    try:
        if cmd == "log":
            weight, reps = _numbers(args)
            controller.set_log_weight(weight)
            controller.set_log_reps(reps)
            if await controller.log_set():
                controller.start_rest_timer()
        elif cmd == "edit":
            exercise = controller.current_exercise
            index = int(args[0]) - 1
            if exercise is None or not 0 <= index < len(exercise.sets):
                print("No such set")
                return True
            controller.open_set_menu(exercise.sets[index].id)
            if controller.edit_selected_set():
                weight, reps = _numbers(args[1:])
                if weight is not None:
                    controller.set_edit_weight(weight)
                if reps is not None:
                    controller.set_edit_reps(reps)
                await controller.save_edit()
        elif cmd == "add-set":
            await controller.add_set()
        elif cmd == "remove-set":
            exercise = controller.current_exercise
            if exercise is None:
                print("No such set")
                return True
            index = int(args[0]) - 1 if args else len(exercise.sets) - 1
            if not 0 <= index < len(exercise.sets):
                print("No such set")
                return True
            controller.open_set_menu(exercise.sets[index].id)
            await controller.remove_selected_set()
        elif cmd in ("add", "swap"):
            if not args:
                print(f"Usage: {cmd} <exercise id>")
                return True
            if cmd == "add":
                controller.open_add_exercise()
            elif not controller.open_swap_exercise():
                return True
            await controller.select_exercise(ExerciseChoice(id=int(args[0])))
        elif cmd == "remove-exercise":
            await controller.remove_exercise()
        elif cmd == "view":
            controller.view_exercise()
        elif cmd == "next":
            controller.switch_exercise(controller.state.current_index + 1)
        elif cmd == "prev":
            controller.switch_exercise(controller.state.current_index - 1)
        elif cmd == "goto":
            controller.switch_exercise(int(args[0]) - 1)
        elif cmd == "rest":
            if not args:
                if not controller.start_rest_timer():
                    print("No rest interval configured")
            elif args[0] == "stop":
                controller.dismiss_rest_timer()
            elif args[0].startswith("-"):
                controller.subtract_rest_time(int(args[0][1:]))
            else:
                controller.add_rest_time(int(args[0].lstrip("+")))
        elif cmd == "finish":
            if controller.request_finish():
                notes = " ".join(args) or None
                if await controller.confirm_finish(notes):
                    summary = controller.summary()
                    print(
                        f"Workout complete in {summary['duration']}: "
                        f"{summary['total_sets']} sets, {summary['total_reps']} reps, "
                        f"{format_weight(summary['total_volume'])} volume"
                    )
                    return False
        elif cmd == "cancel":
            controller.request_cancel()
            if await controller.confirm_cancel():
                print("Workout cancelled")
                return False
            controller.close_menu()
        elif cmd in ("quit", "exit"):
            return False
        elif cmd == "help":
            print(HELP)
        else:
            print(f"Unknown command {cmd!r}, type 'help'")
    except (ValueError, IndexError):
        print(f"Invalid arguments for {cmd!r}, type 'help'")
    if controller.state.menu is Menu.finish_confirm:
        controller.close_menu()
    return True


async def track(
    settings: TrackerSettings, session_id: int, exercise: Optional[str] = None
) -> None:
    """Interactive tracking loop for ``session_id`` against the configured API."""
    logger.info("Tracking session %s against %s", session_id, settings.api_url)
    gateway = AsyncSessionGateway(SessionClient(settings.api_url, settings.request_timeout))
    controller = WorkoutSessionController(
        gateway,
        session_id,
        settings,
        navigation_hint=exercise,
        on_view_exercise=lambda name: print(f"Viewing {name}"),
    )
    try:
        if not await controller.load():
            print(controller.state.error)
            return
        print(HELP)
        while True:
            print(render(controller, settings.weight_unit))
            line = await asyncio.to_thread(input, "> ")
            if not await dispatch(controller, line):
                break
    except (EOFError, KeyboardInterrupt):
        pass
    finally:
        controller.close()


def start_session(settings: TrackerSettings, template_id: Optional[int]) -> int:
    client = SessionClient(settings.api_url, settings.request_timeout)
    session_id = client.start_session(template_id)
    print(f"Started session {session_id}")
    return session_id


def list_catalog(settings: TrackerSettings, search: Optional[str] = None) -> None:
    client = SessionClient(settings.api_url, settings.request_timeout)
    for entry in client.list_exercises(search):
        print(f"{entry['id']:>4}  {entry['name']}  ({entry['muscle_group'] or '-'})")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Workout session tracker")
    parser.add_argument("--config", default=None, help="settings YAML file")
    sub = parser.add_subparsers(dest="cmd", required=True)

    serve = sub.add_parser("serve")
    serve.add_argument("--db", default="workout.db")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    demo = sub.add_parser("demo")
    demo.add_argument("--db", default="workout.db")

    exercises = sub.add_parser("exercises")
    exercises.add_argument("--search", default=None)

    start = sub.add_parser("start")
    start.add_argument("--template", type=int, default=None)

    trk = sub.add_parser("track")
    trk.add_argument("--session", type=int, required=True)
    trk.add_argument("--exercise", default=None, help="exercise to open first")

    args = parser.parse_args(argv)
    settings = load_settings(args.config)
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.cmd == "serve":
        import uvicorn

        uvicorn.run(SessionAPI(db_path=args.db).app, host=args.host, port=args.port)
    elif args.cmd == "demo":
        seed(args.db)
    elif args.cmd == "exercises":
        list_catalog(settings, args.search)
    elif args.cmd == "start":
        start_session(settings, args.template)
    elif args.cmd == "track":
        asyncio.run(track(settings, args.session, args.exercise))


if __name__ == "__main__":
    main()
