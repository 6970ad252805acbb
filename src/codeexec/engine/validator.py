"""RequestValidator — cheap structural checks run before any allocation."""

from __future__ import annotations

from codeexec.engine.models import ExecutionRequest, SupportedLanguage, ValidationResult

MAX_CODE_BYTES = 50_000
MAX_INPUT_BYTES = 10_000
MIN_TIMEOUT_MS = 1_000
MAX_TIMEOUT_MS = 120_000

_SUPPORTED = frozenset(lang.value for lang in SupportedLanguage)


class RequestValidator:
    """Collect every violation in a request, not just the first one."""

    def __init__(
        self,
        *,
        max_code_bytes: int = MAX_CODE_BYTES,
        max_input_bytes: int = MAX_INPUT_BYTES,
    ) -> None:
        self._max_code_bytes = max_code_bytes
        self._max_input_bytes = max_input_bytes

    def validate(self, request: ExecutionRequest) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []

        if not request.code or not request.code.strip():
            errors.append("Code cannot be empty")
        if len(request.code.encode("utf-8")) > self._max_code_bytes:
            errors.append(f"Code exceeds maximum length ({self._max_code_bytes // 1000}KB)")

        if request.language not in _SUPPORTED:
            errors.append(f"Unsupported language: {request.language}")

        if request.input is not None and len(request.input.encode("utf-8")) > self._max_input_bytes:
            errors.append(f"Input exceeds maximum length ({self._max_input_bytes // 1000}KB)")

        if request.timeout_ms is not None and not (
            MIN_TIMEOUT_MS <= request.timeout_ms <= MAX_TIMEOUT_MS
        ):
            warnings.append("Timeout should be between 1-120 seconds")

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)
