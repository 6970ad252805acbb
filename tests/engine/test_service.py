"""Tests for CodeExecutionEngine (docker CLI faked)."""

import asyncio

import pytest

from codeexec.config import EngineSettings, LanguageOverride
from codeexec.engine.errors import (
    DockerCommandError,
    ExecutionTimeoutError,
    ResourceLimitError,
    SecurityError,
)
from codeexec.engine.models import (
    ExecutionRequest,
    RunOutput,
    SandboxStatus,
    SupportedLanguage,
)
from codeexec.engine.provisioner import SandboxProvisioner
from codeexec.engine.registry import SandboxRegistry
from codeexec.engine.service import CodeExecutionEngine


@pytest.fixture
def engine(fake_docker, registry: SandboxRegistry) -> CodeExecutionEngine:
    return CodeExecutionEngine(docker=fake_docker, registry=registry)


def _request(code: str = "print('hello world')", **kwargs) -> ExecutionRequest:
    kwargs.setdefault("language", "python")
    return ExecutionRequest(code=code, **kwargs)


class TestExecuteCode:
    async def test_success(self, engine: CodeExecutionEngine, fake_docker) -> None:
        fake_docker.stdout = b"hello world\n"

        result = await engine.execute_code(_request())

        assert result.success
        assert result.output == "hello world"
        assert result.error is None
        assert result.exit_code == 0
        assert not result.timed_out
        assert result.execution_time_ms >= 0
        assert result.sandbox_id is not None
        assert fake_docker.verbs() == ["create", "start", "inspect", "stop", "rm"]
        assert engine.get_active_sandbox_count() == 0
        assert fake_docker.containers == {}

    async def test_program_error_is_a_result(
        self, engine: CodeExecutionEngine, fake_docker
    ) -> None:
        fake_docker.stderr = b"ZeroDivisionError: division by zero\n"
        fake_docker.exit_code = 1

        result = await engine.execute_code(_request("print(1/0)"))

        assert not result.success
        assert result.exit_code == 1
        assert result.error == "ZeroDivisionError: division by zero"
        assert engine.get_active_sandbox_count() == 0

    async def test_timeout(self, engine: CodeExecutionEngine, fake_docker) -> None:
        fake_docker.hang = True

        result = await engine.execute_code(_request("while True: pass", timeout_ms=50))

        assert not result.success
        assert result.timed_out
        assert result.exit_code == 124
        assert "Execution timed out" in (result.error or "")
        assert engine.get_active_sandbox_count() == 0
        assert fake_docker.containers == {}

    async def test_stdin_reaches_program(self, engine: CodeExecutionEngine, fake_docker) -> None:
        await engine.execute_code(_request("print(input())", input="abc"))

        assert fake_docker.processes[0].stdin.data == b"abc"
        create_args = fake_docker.calls[0][1]
        assert "--interactive" in create_args

    async def test_uses_profile_timeout_by_default(
        self, fake_docker, registry: SandboxRegistry
    ) -> None:
        seen: list[int] = []

        class RecordingRunner:
            async def run(self, sandbox, timeout_ms):
                seen.append(timeout_ms)
                return RunOutput(exit_code=0)

        engine = CodeExecutionEngine(
            docker=fake_docker, registry=registry, runner=RecordingRunner()  # type: ignore[arg-type]
        )
        await engine.execute_code(_request())
        await engine.execute_code(_request(timeout_ms=0))
        await engine.execute_code(_request(timeout_ms=2_000))

        assert seen == [30_000, 30_000, 2_000]

    async def test_concurrent_executions_use_distinct_sandboxes(
        self, engine: CodeExecutionEngine, fake_docker
    ) -> None:
        def program(args: list[str]) -> tuple[bytes, bytes, int]:
            return args[-1].encode(), b"", 0

        fake_docker.program = program
        codes = [f"print({i})" for i in range(5)]

        results = await asyncio.gather(*(engine.execute_code(_request(c)) for c in codes))

        assert [r.output for r in results] == codes
        assert len({r.sandbox_id for r in results}) == 5
        assert len(fake_docker.create_args) == 5
        assert engine.get_active_sandbox_count() == 0


class TestRejections:
    async def test_empty_code(self, engine: CodeExecutionEngine, fake_docker) -> None:
        with pytest.raises(SecurityError, match="Invalid code input") as info:
            await engine.execute_code(_request(""))
        assert info.value.violations == ["Code cannot be empty"]
        assert fake_docker.calls == []

    async def test_oversized_code(self, engine: CodeExecutionEngine, fake_docker) -> None:
        with pytest.raises(SecurityError, match="50KB"):
            await engine.execute_code(_request("x" * 50_001))
        assert fake_docker.calls == []

    async def test_unsupported_language(self, engine: CodeExecutionEngine, fake_docker) -> None:
        with pytest.raises(SecurityError, match="Unsupported language: cobol"):
            await engine.execute_code(_request(language="cobol"))
        assert fake_docker.calls == []

    async def test_dangerous_code_provisions_nothing(
        self, engine: CodeExecutionEngine, fake_docker
    ) -> None:
        with pytest.raises(SecurityError, match="potentially dangerous"):
            await engine.execute_code(_request("import os\nos.system('ls')"))
        assert fake_docker.calls == []
        assert engine.get_active_sandbox_count() == 0

    async def test_language_without_profile(self, fake_docker, registry) -> None:
        engine = CodeExecutionEngine(docker=fake_docker, registry=registry, profiles={})
        with pytest.raises(SecurityError, match="Unsupported language"):
            await engine.execute_code(_request())


class TestFailurePaths:
    async def test_create_failure(self, engine: CodeExecutionEngine, fake_docker) -> None:
        fake_docker.create_error = DockerCommandError(["docker", "create"], 125, "no such image")

        with pytest.raises(ResourceLimitError):
            await engine.execute_code(_request())
        assert engine.get_active_sandbox_count() == 0

    async def test_runtime_failure_still_reaps(
        self, engine: CodeExecutionEngine, fake_docker
    ) -> None:
        fake_docker.start_error = DockerCommandError(["docker", "start"], 1, "daemon gone")

        with pytest.raises(ExecutionTimeoutError):
            await engine.execute_code(_request())
        assert engine.get_active_sandbox_count() == 0
        assert "rm" in fake_docker.verbs()
        assert fake_docker.containers == {}

    async def test_cancellation_still_reaps(
        self, engine: CodeExecutionEngine, fake_docker
    ) -> None:
        fake_docker.hang = True
        task = asyncio.create_task(engine.execute_code(_request(timeout_ms=60_000)))
        while not fake_docker.processes:
            await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert engine.get_active_sandbox_count() == 0
        assert fake_docker.containers == {}

    async def test_reap_failure_is_not_raised(
        self, engine: CodeExecutionEngine, fake_docker
    ) -> None:
        fake_docker.remove_error = DockerCommandError(["docker", "rm"], 1, "daemon gone")

        result = await engine.execute_code(_request())

        assert result.success
        assert engine.get_active_sandbox_count() == 0


class TestSandboxScope:
    async def test_reaped_when_body_raises(
        self, engine: CodeExecutionEngine, fake_docker
    ) -> None:
        profile = engine.get_profile(SupportedLanguage.PYTHON)

        with pytest.raises(RuntimeError):
            async with engine.sandbox(profile, "print(1)") as sandbox:
                assert engine.get_active_sandbox_count() == 1
                raise RuntimeError("boom")

        assert sandbox.status is SandboxStatus.STOPPED
        assert engine.get_active_sandbox_count() == 0


class TestLifecycle:
    async def test_cleanup_all_sandboxes(self, engine: CodeExecutionEngine, fake_docker) -> None:
        provisioner = SandboxProvisioner(fake_docker, engine.registry)
        profile = engine.get_profile(SupportedLanguage.PYTHON)
        for _ in range(3):
            await provisioner.provision(profile, "print(1)")
        assert engine.get_active_sandbox_count() == 3

        await engine.cleanup_all_sandboxes()

        assert engine.get_active_sandbox_count() == 0
        assert fake_docker.containers == {}

    async def test_context_manager_cleans_up(self, fake_docker, registry) -> None:
        async with CodeExecutionEngine(docker=fake_docker, registry=registry) as engine:
            provisioner = SandboxProvisioner(fake_docker, registry)
            await provisioner.provision(engine.get_profile(SupportedLanguage.GO), "package main")
        assert registry.count() == 0

    async def test_prune_orphans_skips_tracked(
        self, engine: CodeExecutionEngine, fake_docker
    ) -> None:
        provisioner = SandboxProvisioner(fake_docker, engine.registry)
        tracked = await provisioner.provision(
            engine.get_profile(SupportedLanguage.PYTHON), "print(1)"
        )
        fake_docker.containers["codeexec-orphan"] = "exited"

        removed = await engine.prune_orphans()

        assert removed == ["codeexec-orphan"]
        assert tracked.container_name in fake_docker.containers
        assert engine.get_active_sandbox_count() == 1

    def test_supported_languages(self, engine: CodeExecutionEngine) -> None:
        assert set(engine.get_supported_languages()) == set(SupportedLanguage)

    async def test_is_available(self, engine: CodeExecutionEngine) -> None:
        assert await engine.is_available()


class TestFromSettings:
    def test_applies_overrides(self) -> None:
        settings = EngineSettings(
            languages={SupportedLanguage.PYTHON: LanguageOverride(image="python:3.13-alpine")},
            extra_patterns={SupportedLanguage.PYTHON: [r"import\s+ctypes"]},
        )
        engine = CodeExecutionEngine.from_settings(settings)

        assert engine.get_profile(SupportedLanguage.PYTHON).image == "python:3.13-alpine"
        with pytest.raises(SecurityError):
            engine.prepare(_request("import ctypes"))


class TestCancellationDuringCreate:
    async def test_no_container_left(self, engine: CodeExecutionEngine, fake_docker) -> None:
        fake_docker.create_hang = True
        task = asyncio.create_task(engine.execute_code(_request()))
        while "create" not in fake_docker.verbs():
            await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert fake_docker.containers == {}
        assert engine.get_active_sandbox_count() == 0


class TestCleanupReporting:
    async def test_failed_reaps_are_reported(
        self, engine: CodeExecutionEngine, fake_docker, caplog: pytest.LogCaptureFixture
    ) -> None:
        provisioner = SandboxProvisioner(fake_docker, engine.registry)
        profile = engine.get_profile(SupportedLanguage.PYTHON)
        for _ in range(2):
            await provisioner.provision(profile, "print(1)")
        fake_docker.remove_error = DockerCommandError(["docker", "rm"], 1, "daemon gone")

        with caplog.at_level("WARNING", logger="codeexec.engine.service"):
            await engine.cleanup_all_sandboxes()

        assert "Cleaned up 0 of 2 active sandboxes" in caplog.text
        assert engine.get_active_sandbox_count() == 0
