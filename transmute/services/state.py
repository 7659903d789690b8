import fcntl
import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from transmute.constants import STATE_DIR_NAME, STATE_FILE_PATH
from transmute.errors import StateFileError
from transmute.models import Session, State

logger = logging.getLogger(__name__)


def get_state_file_path(base_path: Path | str) -> Path:
    return Path(base_path) / STATE_FILE_PATH


def get_state_dir(base_path: Path | str) -> Path:
    return Path(base_path) / STATE_DIR_NAME


def create_empty_state() -> State:
    return State(sessions=[])


@contextmanager
def _state_lock(base_path: Path | str) -> Iterator[None]:
    """Exclusive lock held across a whole read-modify-write of the state file."""
    get_state_dir(base_path).mkdir(parents=True, exist_ok=True)
    lock_file = get_state_file_path(base_path).with_suffix(".lock")
    with open(lock_file, "a") as lf:
        fcntl.flock(lf, fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(lf, fcntl.LOCK_UN)


def load_state(base_path: Path | str) -> State:
    """Read the state file. A missing file is an empty state.

    Raises StateFileError for malformed JSON and pydantic's ValidationError
    when the content does not match the schema.
    """
    state_file = get_state_file_path(base_path)
    try:
        content = state_file.read_text()
    except FileNotFoundError:
        return create_empty_state()
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise StateFileError(str(state_file)) from e
    return State.model_validate(data)


def _write_state(base_path: Path | str, state: State) -> None:
    validated = State.model_validate(state.model_dump())
    state_file = get_state_file_path(base_path)
    state_file.parent.mkdir(parents=True, exist_ok=True)
    tmp = state_file.with_suffix(".tmp")
    tmp.write_text(validated.model_dump_json(by_alias=True, exclude_none=True, indent=2))
    tmp.rename(state_file)


def save_state(base_path: Path | str, state: State) -> None:
    """Validate and atomically replace the state file."""
    with _state_lock(base_path):
        _write_state(base_path, state)


def add_session(base_path: Path | str, session: Session) -> None:
    """Insert ``session``, replacing any record with the same task id."""
    if not session.opencode_session_id:
        raise ValueError(f"Session for task '{session.task_id}' has no opencode_session_id")
    session = Session.model_validate(session.model_dump())

    with _state_lock(base_path):
        state = load_state(base_path)
        for i, existing in enumerate(state.sessions):
            if existing.task_id == session.task_id:
                state.sessions[i] = session
                break
        else:
            state.sessions.append(session)
        _write_state(base_path, state)
    logger.debug("Saved session", extra={"task_id": session.task_id, "branch": session.branch})


def remove_session(base_path: Path | str, task_id: str) -> None:
    with _state_lock(base_path):
        state = load_state(base_path)
        remaining = [s for s in state.sessions if s.task_id != task_id]
        if len(remaining) == len(state.sessions):
            return
        state.sessions = remaining
        _write_state(base_path, state)


def find_session_by_task(base_path: Path | str, task_id: str) -> Session | None:
    return load_state(base_path).get_session(task_id)
