from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

BranchType = Literal["feat", "fix", "refactor", "docs", "chore", "test"]
WorkspaceStatus = Literal["created", "existing", "failed"]
SessionStatus = Literal["active", "missing", "orphaned"]


class CamelModel(BaseModel):
    """Base for records whose external (JSON) shape uses camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Worktree(CamelModel):
    path: str
    branch: str
    is_main: bool = False
    head: str | None = None


class Session(CamelModel):
    model_config = ConfigDict(extra="ignore")

    task_id: str
    task_name: str
    branch: str
    worktree_path: str
    created_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    # Optional only so that legacy state files still load; add_session requires it.
    opencode_session_id: str | None = None

    @field_validator("created_at")
    @classmethod
    def _validate_created_at(cls, value: str) -> str:
        datetime.fromisoformat(value)
        return value


class State(CamelModel):
    sessions: list[Session] = Field(default_factory=list)

    def get_session(self, task_id: str) -> Session | None:
        for session in self.sessions:
            if session.task_id == task_id:
                return session
        return None


class TaskContext(BaseModel):
    id: str = ""
    title: str = ""
    description: str | None = None
    priority: str | None = None
    type: str | None = None


class BranchNameHint(BaseModel):
    type: BranchType
    slug: str = Field(min_length=1)


class BranchNameResult(BaseModel):
    branch: str
    type: BranchType
    slug: str


class HooksConfig(CamelModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    after_create: list[str] | None = None
    before_destroy: list[str] | None = None


class HookResult(CamelModel):
    command: str
    success: bool
    stdout: str
    stderr: str
    exit_code: int
    duration: float  # milliseconds


class OpenSessionOptions(BaseModel):
    cwd: str
    commands: list[str] | None = None
    title: str | None = None
    env: dict[str, str] | None = None


class TerminalAvailability(BaseModel):
    name: str
    available: bool
    version: str | None = None


class WorkspaceRequest(CamelModel):
    model_config = ConfigDict(extra="ignore")

    task_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str | None = None
    priority: str | None = None
    type: BranchType | None = None
    slug: str | None = None
    base_branch: str | None = None


class WorkspaceResult(CamelModel):
    status: WorkspaceStatus
    task_id: str
    task_name: str | None = None
    branch: str | None = None
    worktree_path: str | None = None
    opencode_session_id: str | None = None
    message: str | None = None

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class SessionInfo(CamelModel):
    task_id: str | None = None
    task_name: str | None = None
    branch: str
    worktree_path: str
    status: SessionStatus
    opencode_session_id: str | None = None
    created_at: str | None = None


class CleanReport(CamelModel):
    cleaned_count: int = 0
    cleaned_paths: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
