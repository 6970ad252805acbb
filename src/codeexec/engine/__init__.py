"""Sandboxed code execution engine — screening, isolation, and teardown."""

from codeexec.engine.errors import (
    CodeExecutionError,
    ConfigError,
    DockerCommandError,
    ExecutionTimeoutError,
    ResourceLimitError,
    SecurityError,
)
from codeexec.engine.models import (
    ExecutionRequest,
    ExecutionResult,
    LanguageProfile,
    Sandbox,
    SandboxStatus,
    SupportedLanguage,
    ValidationResult,
)
from codeexec.engine.service import CodeExecutionEngine

__all__ = [
    "CodeExecutionEngine",
    "CodeExecutionError",
    "ConfigError",
    "DockerCommandError",
    "ExecutionRequest",
    "ExecutionResult",
    "ExecutionTimeoutError",
    "LanguageProfile",
    "ResourceLimitError",
    "Sandbox",
    "SandboxStatus",
    "SecurityError",
    "SupportedLanguage",
    "ValidationResult",
]
