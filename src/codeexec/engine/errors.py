"""Error types for the code execution engine.

``SecurityError``, ``ResourceLimitError`` and ``ExecutionTimeoutError`` are
the engine failures a caller sees.  A submitted program that exits non-zero,
crashes, or times out is *not* an error: it is reported through
:class:`~codeexec.engine.models.ExecutionResult`.
"""

from __future__ import annotations

from collections.abc import Sequence


class CodeExecutionError(Exception):
    """Base error for all engine failures."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail or self.__class__.__name__)


class SecurityError(CodeExecutionError):
    """The request failed validation or the static security screen.

    Always raised before any sandbox is provisioned.
    """

    def __init__(
        self,
        detail: str,
        *,
        violations: Sequence[str] = (),
        language: str | None = None,
        pattern: str | None = None,
    ) -> None:
        self.violations = list(violations)
        self.language = language
        self.pattern = pattern
        super().__init__(detail)


class ResourceLimitError(CodeExecutionError):
    """A sandbox could not be created (runtime unavailable, bad resource spec)."""


class ExecutionTimeoutError(CodeExecutionError):
    """The container runtime failed while starting or awaiting the program.

    Distinct from a program timeout, which is a normal result with
    ``timed_out=True``.
    """


class DockerCommandError(CodeExecutionError):
    """A container-runtime CLI call failed."""

    _GONE_MARKERS = ("no such container", "is not running", "removal of container")

    def __init__(self, args: Sequence[str], returncode: int | None, stderr: str = "") -> None:
        self.command = list(args)
        self.returncode = returncode
        self.stderr = stderr
        verb = self.command[1] if len(self.command) > 1 else "?"
        super().__init__(f"docker {verb} failed (rc={returncode})" + (f": {stderr}" if stderr else ""))

    @property
    def is_missing_container(self) -> bool:
        """True when the failure only means the container is already gone."""
        text = self.stderr.lower()
        return any(marker in text for marker in self._GONE_MARKERS)


class ConfigError(Exception):
    """Raised when an engine settings file fails parsing or validation."""
