"""Data models for the code execution engine."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SupportedLanguage(str, Enum):
    """Languages the engine can execute."""

    JAVASCRIPT = "javascript"
    PYTHON = "python"
    JAVA = "java"
    TYPESCRIPT = "typescript"
    GO = "go"
    RUST = "rust"


class SandboxStatus(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"


class ExecutionRequest(BaseModel):
    """A request to run a piece of source code."""

    code: str = Field(..., description="Source text to execute.")
    language: str = Field(..., description="One of the SupportedLanguage values.")
    input: str | None = Field(default=None, description="Optional stdin for the program.")
    timeout_ms: int | None = Field(default=None, description="Per-request timeout override.")
    memory_limit: str | None = Field(default=None, description="Memory cap, e.g. '64m'.")
    cpu_limit: float | None = Field(default=None, description="CPU share, fraction of one core.")


class Ulimit(BaseModel):
    """One ``--ulimit`` triple."""

    model_config = ConfigDict(frozen=True)

    name: str
    soft: int
    hard: int


class LanguageProfile(BaseModel):
    """Immutable sandbox settings for one language."""

    model_config = ConfigDict(frozen=True)

    language: SupportedLanguage
    image: str = Field(..., description="Container image reference.")
    memory_limit: str = Field(default="128m", description="Memory ceiling (K/M/G suffix).")
    cpu_limit: float = Field(default=0.5, gt=0, description="CPU share, fraction of one core.")
    timeout_ms: int = Field(default=30_000, gt=0, description="Default wall-clock timeout.")
    network_mode: str = Field(default="none", description="Container network mode.")
    read_only_rootfs: bool = Field(default=True)
    no_new_privileges: bool = Field(default=True)
    user: str = Field(default="nobody", description="Non-root execution user.")
    working_dir: str = Field(default="/sandbox")
    pids_limit: int = Field(default=64)
    ulimits: tuple[Ulimit, ...] = Field(default_factory=tuple)
    env: dict[str, str] = Field(default_factory=dict)
    command: tuple[str, ...] = Field(
        ...,
        description="Argv template; the '{source}' element is replaced by the submitted code.",
    )


class Sandbox(BaseModel):
    """One provisioned container, owned by the registry until reaped."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    container_id: str
    container_name: str
    language: SupportedLanguage
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    last_used: datetime = Field(default_factory=lambda: datetime.now(UTC))
    status: SandboxStatus = SandboxStatus.RUNNING
    stdin: str | None = None

    def touch(self) -> None:
        self.last_used = datetime.now(UTC)

    def mark(self, status: SandboxStatus) -> None:
        """Move out of ``running``.  Terminal states never change again."""
        if status is SandboxStatus.RUNNING:
            raise ValueError(f"sandbox {self.id} cannot re-enter running")
        if self.status is SandboxStatus.RUNNING:
            self.status = status


class ValidationResult(BaseModel):
    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class RunOutput(BaseModel):
    """What the runner observed for one sandbox."""

    stdout: str = ""
    stderr: str = ""
    exit_code: int
    timed_out: bool = False


class ExecutionResult(BaseModel):
    """Terminal result returned to the caller of ``execute_code``."""

    model_config = ConfigDict(frozen=True)

    success: bool
    output: str = ""
    error: str | None = None
    execution_time_ms: int
    exit_code: int
    timed_out: bool = False
    sandbox_id: str | None = None


class ContainerState(BaseModel):
    status: str
    exit_code: int = 0
