"""CodeExecutionEngine — the caller-facing entry point.

``execute_code`` runs the pipeline::

    validate -> screen -> profile lookup -> provision -> run -> reap

Validation and screening happen before anything is allocated.  Provisioning
and reaping are paired by :meth:`CodeExecutionEngine.sandbox`, so every
provisioned container is reaped exactly once whether the run returns,
raises, times out, or the calling task is cancelled.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from types import TracebackType
from typing import TYPE_CHECKING

from codeexec.engine.docker_cli import DockerCLI
from codeexec.engine.errors import SecurityError
from codeexec.engine.models import (
    ExecutionRequest,
    ExecutionResult,
    LanguageProfile,
    Sandbox,
    SupportedLanguage,
)
from codeexec.engine.profiles import DEFAULT_PROFILES
from codeexec.engine.provisioner import MANAGED_LABEL, SandboxProvisioner
from codeexec.engine.reaper import SandboxReaper
from codeexec.engine.registry import SandboxRegistry
from codeexec.engine.runner import ExecutionRunner
from codeexec.engine.screen import SecurityScreen
from codeexec.engine.validator import RequestValidator
from codeexec.utils.telemetry import (
    ATTR_IMAGE,
    ATTR_LANGUAGE,
    ATTR_SANDBOX_ID,
    ATTR_TIMEOUT_MS,
    get_tracer,
    record_result,
)

if TYPE_CHECKING:
    from codeexec.config import EngineSettings

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)


class CodeExecutionEngine:
    """Execute untrusted code in throwaway, locked-down containers.

    Every collaborator is injectable; the defaults build a complete engine
    around the ``docker`` CLI.  Each engine owns its own registry, so tests
    can run isolated engines side by side.
    """

    def __init__(
        self,
        *,
        docker: DockerCLI | None = None,
        registry: SandboxRegistry | None = None,
        profiles: Mapping[SupportedLanguage, LanguageProfile] | None = None,
        validator: RequestValidator | None = None,
        screen: SecurityScreen | None = None,
        provisioner: SandboxProvisioner | None = None,
        runner: ExecutionRunner | None = None,
        reaper: SandboxReaper | None = None,
    ) -> None:
        self._docker = docker or DockerCLI()
        self._registry = registry if registry is not None else SandboxRegistry()
        self._profiles = dict(profiles if profiles is not None else DEFAULT_PROFILES)
        self._validator = validator or RequestValidator()
        self._screen = screen or SecurityScreen()
        self._provisioner = provisioner or SandboxProvisioner(self._docker, self._registry)
        self._runner = runner or ExecutionRunner(self._docker)
        self._reaper = reaper or SandboxReaper(self._docker, self._registry)

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> CodeExecutionEngine:
        """Build an engine wired according to *settings*."""
        from codeexec.config import build_profiles

        docker = DockerCLI(settings.docker_binary, command_timeout=settings.command_timeout)
        registry = SandboxRegistry()
        return cls(
            docker=docker,
            registry=registry,
            profiles=build_profiles(settings),
            screen=SecurityScreen(extra_patterns=settings.extra_patterns),
            provisioner=SandboxProvisioner(
                docker,
                registry,
                name_prefix=settings.container_prefix,
                scratch_size=settings.scratch_size,
            ),
            runner=ExecutionRunner(docker, max_output_bytes=settings.max_output_bytes),
            reaper=SandboxReaper(docker, registry, grace_period=settings.stop_grace_period),
        )

    @property
    def registry(self) -> SandboxRegistry:
        return self._registry

    async def __aenter__(self) -> CodeExecutionEngine:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.cleanup_all_sandboxes()

    async def execute_code(self, request: ExecutionRequest) -> ExecutionResult:
        """Run *request* and return its result.

        Raises:
            SecurityError: invalid request or dangerous code; nothing allocated.
            ResourceLimitError: the sandbox could not be created.
            ExecutionTimeoutError: the runtime failed while running the sandbox.
        """
        started = time.monotonic()
        profile, code = self.prepare(request)
        timeout_ms = profile.timeout_ms
        if request.timeout_ms is not None and request.timeout_ms > 0:
            timeout_ms = request.timeout_ms

        with _tracer.start_as_current_span("codeexec.execute") as span:
            span.set_attribute(ATTR_LANGUAGE, profile.language.value)
            span.set_attribute(ATTR_IMAGE, profile.image)
            span.set_attribute(ATTR_TIMEOUT_MS, timeout_ms)

            async with self.sandbox(
                profile,
                code,
                request.input,
                memory_limit=request.memory_limit,
                cpu_limit=request.cpu_limit,
            ) as sandbox:
                span.set_attribute(ATTR_SANDBOX_ID, sandbox.id)
                run = await self._runner.run(sandbox, timeout_ms)

            result = ExecutionResult(
                success=run.exit_code == 0,
                output=run.stdout,
                error=run.stderr or None,
                execution_time_ms=int((time.monotonic() - started) * 1000),
                exit_code=run.exit_code,
                timed_out=run.timed_out,
                sandbox_id=sandbox.id,
            )
            record_result(span, result)

        logger.info(
            "Executed %s sandbox %s: exit=%d timed_out=%s duration=%dms",
            profile.language.value,
            sandbox.id,
            result.exit_code,
            result.timed_out,
            result.execution_time_ms,
        )
        return result

    def prepare(self, request: ExecutionRequest) -> tuple[LanguageProfile, str]:
        """Validate and screen *request*; return its profile and the vetted code.

        Pure checks only.  Raises :class:`SecurityError` on any violation.
        """
        validation = self._validator.validate(request)
        for warning in validation.warnings:
            logger.warning("Execution request warning: %s", warning)
        if not validation.is_valid:
            raise SecurityError(
                f"Invalid code input: {', '.join(validation.errors)}",
                violations=validation.errors,
                language=request.language,
            )

        language = SupportedLanguage(request.language)
        code = self._screen.screen(request.code, language)

        profile = self._profiles.get(language)
        if profile is None:
            raise SecurityError(f"Unsupported language: {request.language}", language=request.language)
        return profile, code

    @asynccontextmanager
    async def sandbox(
        self,
        profile: LanguageProfile,
        code: str,
        stdin: str | None = None,
        *,
        memory_limit: str | None = None,
        cpu_limit: float | None = None,
    ) -> AsyncIterator[Sandbox]:
        """Provision a sandbox for the duration of the ``async with`` block.

        The sandbox is reaped on every exit path.  Reaping is shielded so a
        cancellation arriving during teardown cannot leave the container
        behind.
        """
        sandbox = await self._provisioner.provision(
            profile, code, stdin, memory_limit=memory_limit, cpu_limit=cpu_limit
        )
        try:
            yield sandbox
        finally:
            await asyncio.shield(self._reaper.reap(sandbox))

    def get_active_sandbox_count(self) -> int:
        return self._registry.count()

    async def cleanup_all_sandboxes(self) -> None:
        """Best-effort reap of every active sandbox (e.g. at shutdown)."""
        total = self._registry.count()
        reaped = await self._registry.cleanup_all(self._reaper.reap)
        if reaped < total:
            logger.warning("Cleaned up %d of %d active sandboxes", reaped, total)
        elif total:
            logger.info("Cleaned up %d active sandboxes", total)

    async def prune_orphans(self) -> list[str]:
        """Remove labelled containers this engine is not tracking.

        Recovers containers left behind by a process that died before it
        could reap them.  Returns the names that were removed.
        """
        tracked = {s.container_name for s in self._registry.snapshot()}
        names = await self._docker.list_containers(MANAGED_LABEL)
        removed: list[str] = []
        for name in names:
            if name in tracked:
                continue
            if await self._reaper.reap_container(name):
                removed.append(name)
        if removed:
            logger.info("Pruned %d orphaned sandbox containers", len(removed))
        return removed

    def get_supported_languages(self) -> list[SupportedLanguage]:
        return list(self._profiles)

    def get_profile(self, language: SupportedLanguage) -> LanguageProfile:
        return self._profiles[language]

    async def is_available(self) -> bool:
        """Whether the container runtime answers."""
        return await self._docker.ping()

