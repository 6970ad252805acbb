"""Tests for SandboxReaper."""

import asyncio

from codeexec.engine.errors import DockerCommandError
from codeexec.engine.models import Sandbox, SandboxStatus, SupportedLanguage
from codeexec.engine.reaper import SandboxReaper
from codeexec.engine.registry import SandboxRegistry


def _registered(fake_docker, registry: SandboxRegistry, name: str = "codeexec-1") -> Sandbox:
    sandbox = Sandbox(container_id=name, container_name=name, language=SupportedLanguage.PYTHON)
    registry.register(sandbox)
    fake_docker.containers[name] = "exited"
    return sandbox


class TestSandboxReaper:
    async def test_stop_then_remove(self, fake_docker, registry: SandboxRegistry) -> None:
        sandbox = _registered(fake_docker, registry)
        reaper = SandboxReaper(fake_docker, registry, grace_period=3)

        assert await reaper.reap(sandbox) is True

        assert fake_docker.calls == [("stop", ("codeexec-1", 3)), ("rm", "codeexec-1")]
        assert sandbox.status is SandboxStatus.STOPPED
        assert registry.count() == 0
        assert fake_docker.containers == {}

    async def test_second_reap_is_a_no_op(self, fake_docker, registry: SandboxRegistry) -> None:
        sandbox = _registered(fake_docker, registry)
        reaper = SandboxReaper(fake_docker, registry)

        await reaper.reap(sandbox)
        assert await reaper.reap(sandbox) is True

        assert fake_docker.verbs().count("rm") == 1

    async def test_concurrent_reaps_tear_down_once(
        self, fake_docker, registry: SandboxRegistry
    ) -> None:
        sandbox = _registered(fake_docker, registry)
        reaper = SandboxReaper(fake_docker, registry)

        await asyncio.gather(*(reaper.reap(sandbox) for _ in range(5)))

        assert fake_docker.verbs().count("stop") == 1
        assert fake_docker.verbs().count("rm") == 1

    async def test_missing_container_counts_as_reaped(
        self, fake_docker, registry: SandboxRegistry
    ) -> None:
        sandbox = _registered(fake_docker, registry)
        del fake_docker.containers[sandbox.container_name]
        fake_docker.stop_error = DockerCommandError(
            ["docker", "stop"], 1, "Error: No such container: codeexec-1"
        )

        await SandboxReaper(fake_docker, registry).reap(sandbox)

        assert sandbox.status is SandboxStatus.STOPPED

    async def test_stop_failure_still_removes(self, fake_docker, registry: SandboxRegistry) -> None:
        sandbox = _registered(fake_docker, registry)
        fake_docker.stop_error = DockerCommandError(["docker", "stop"], None, "timed out after 35s")

        await SandboxReaper(fake_docker, registry).reap(sandbox)

        assert "rm" in fake_docker.verbs()
        assert sandbox.status is SandboxStatus.STOPPED

    async def test_remove_failure_marks_error_without_raising(
        self, fake_docker, registry: SandboxRegistry
    ) -> None:
        sandbox = _registered(fake_docker, registry)
        fake_docker.remove_error = DockerCommandError(
            ["docker", "rm"], 1, "Cannot connect to the Docker daemon"
        )

        assert await SandboxReaper(fake_docker, registry).reap(sandbox) is False

        assert sandbox.status is SandboxStatus.ERROR
        assert registry.count() == 0

    async def test_reap_container_reports_outcome(
        self, fake_docker, registry: SandboxRegistry
    ) -> None:
        fake_docker.containers["orphan"] = "exited"
        reaper = SandboxReaper(fake_docker, registry)

        assert await reaper.reap_container("orphan") is True
        # Already gone on the second attempt.
        assert await reaper.reap_container("orphan") is True

        fake_docker.remove_error = DockerCommandError(["docker", "rm"], 1, "daemon error")
        assert await reaper.reap_container("other") is False
