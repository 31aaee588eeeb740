from enum import Enum
from typing import Any, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class BuildMode(str, Enum):
    build = "build"
    upload = "upload"


class RefKind(str, Enum):
    branch = "branch"
    tag = "tag"
    pull_request = "pull_request"
    unknown = "unknown"


class StatusKind(str, Enum):
    running = "running"
    succeeded = "succeeded"
    failed = "failed"
    unknown = "unknown"

    @property
    def is_terminal(self) -> bool:
        return self in (StatusKind.succeeded, StatusKind.failed)


class Outcome(str, Enum):
    succeeded = "succeeded"
    failed = "failed"
    timed_out = "timed_out"


class AttemptKind(str, Enum):
    terminal = "terminal"
    transient = "transient"
    continue_ = "continue"


class StatusVocabulary(BaseModel):
    """Status tokens the remote service may report, and whether upload mode is allowed."""

    model_config = ConfigDict(frozen=True)

    success_tokens: FrozenSet[str] = frozenset(
        {"Succeeded", "succeeded", "success", "completed"}
    )
    failure_tokens: FrozenSet[str] = frozenset({"Failed", "failed", "error"})
    supports_upload: bool = True


class BuildConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    endpoint_base: str = "https://embr-poc.azurewebsites.net/api"
    project_id: str = Field(min_length=1)
    poll_interval_seconds: float = Field(default=10.0, gt=0)
    max_attempts: int = Field(default=60, gt=0)
    request_timeout_ms: int = Field(default=30_000, gt=0)
    mode: BuildMode = BuildMode.build
    environment_id: Optional[str] = None
    artifact_path: Optional[str] = None
    detect_immediate_status: bool = True
    vocabulary: StatusVocabulary = StatusVocabulary()

    @field_validator("endpoint_base")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @model_validator(mode="after")
    def _check_upload_inputs(self) -> "BuildConfig":
        if self.mode == BuildMode.upload and not (
            self.environment_id and self.artifact_path
        ):
            raise ValueError("upload mode requires environment_id and artifact_path")
        return self

    @property
    def request_timeout(self) -> float:
        return self.request_timeout_ms / 1000

    @property
    def worst_case_seconds(self) -> float:
        """Upper bound on the poll loop's wall time."""
        return self.max_attempts * (self.poll_interval_seconds + self.request_timeout)


class RepositoryContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    full_repository: str
    ref: str
    ref_kind: RefKind = RefKind.unknown
    branch_or_tag: Optional[str] = None
    commit_sha: str
    actor: str = ""
    event_name: str = ""
    run_id: str = ""
    workflow: str = ""
    run_number: str = ""


class TriggerResult(BaseModel):
    """Handle on a started build, as returned by the trigger request."""

    build_id: str
    immediate_status: Optional[StatusKind] = None
    raw: Any = None


class PollAttempt(BaseModel):
    index: int
    kind: AttemptKind
    status: Optional[StatusKind] = None
    error: Optional[str] = None


class PollOutcome(BaseModel):
    outcome: Outcome
    raw_response: Any = None
    attempts: List[PollAttempt] = Field(default_factory=list)
    elapsed_time: float = 0.0


class DerivedFields(BaseModel):
    model_config = ConfigDict(frozen=True)

    build_number: Optional[str] = None
    deployment_url: Optional[str] = None
    log_url: Optional[str] = None
    duration_seconds: Optional[float] = None


class BuildResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    outcome: Outcome
    raw_response: Any = None
    build_id: Optional[str] = None
    message: Optional[str] = None
    derived: DerivedFields = DerivedFields()
    attempts: int = 0
