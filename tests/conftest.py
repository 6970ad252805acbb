"""Shared fixtures: an in-memory stand-in for the docker CLI."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from codeexec.engine.errors import DockerCommandError
from codeexec.engine.models import ContainerState
from codeexec.engine.registry import SandboxRegistry


class FakeStdin:
    def __init__(self) -> None:
        self.data = b""
        self.closed = False

    def write(self, data: bytes) -> None:
        self.data += data

    async def drain(self) -> None:
        return None

    def close(self) -> None:
        self.closed = True


class FakeProcess:
    """Mimics the ``docker start --attach`` client process."""

    def __init__(
        self,
        stdout: bytes = b"",
        stderr: bytes = b"",
        *,
        hang: bool = False,
        interactive: bool = False,
        chunk_size: int = 0,
    ) -> None:
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.stdin = FakeStdin() if interactive else None
        self.returncode: int | None = None
        self.killed = False
        self._done = asyncio.Event()
        for reader, data in ((self.stdout, stdout), (self.stderr, stderr)):
            step = chunk_size or len(data) or 1
            for i in range(0, len(data), step):
                reader.feed_data(data[i : i + step])
        if not hang:
            self._finish(0)

    def _finish(self, code: int) -> None:
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self.returncode = code
        self._done.set()

    async def wait(self) -> int:
        await self._done.wait()
        assert self.returncode is not None
        return self.returncode

    def kill(self) -> None:
        self.killed = True
        if self.returncode is None:
            self._finish(-9)


Program = Callable[[list[str]], tuple[bytes, bytes, int]]


class FakeDocker:
    """Scriptable replacement for :class:`~codeexec.engine.docker_cli.DockerCLI`.

    Containers live in ``self.containers`` (name -> status).  By default
    every program prints ``stdout``/``stderr`` and exits with ``exit_code``;
    set ``program`` to compute those from the ``docker create`` args.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.containers: dict[str, str] = {}
        self.create_args: dict[str, list[str]] = {}
        self.exit_codes: dict[str, int] = {}
        self.processes: list[FakeProcess] = []
        self.stdout = b""
        self.stderr = b""
        self.exit_code = 0
        self.hang = False
        self.program: Program | None = None
        self.create_error: Exception | None = None
        self.start_error: Exception | None = None
        self.inspect_error: Exception | None = None
        self.stop_error: Exception | None = None
        self.remove_error: Exception | None = None
        self.never_started = False
        self.create_hang = False

    def verbs(self) -> list[str]:
        return [verb for verb, _ in self.calls]

    async def create(self, args: list[str]) -> str:
        self.calls.append(("create", list(args)))
        if self.create_error is not None:
            raise self.create_error
        name = args[args.index("--name") + 1]
        self.containers[name] = "created"
        self.create_args[name] = list(args)
        if self.create_hang:
            # The daemon has the container; the client never answers.
            await asyncio.Event().wait()
        return f"id-{name}"

    async def start_attached(self, container: str, *, interactive: bool = False) -> FakeProcess:
        self.calls.append(("start", container))
        if self.start_error is not None:
            raise self.start_error

        stdout, stderr, code = self.stdout, self.stderr, self.exit_code
        if self.program is not None:
            stdout, stderr, code = self.program(self.create_args[container])

        proc = FakeProcess(stdout, stderr, hang=self.hang, interactive=interactive)
        self.processes.append(proc)
        if self.never_started:
            return proc
        self.containers[container] = "running" if self.hang else "exited"
        self.exit_codes[container] = code
        return proc

    async def inspect_state(self, container: str) -> ContainerState:
        self.calls.append(("inspect", container))
        if self.inspect_error is not None:
            raise self.inspect_error
        return ContainerState(
            status=self.containers.get(container, "exited"),
            exit_code=self.exit_codes.get(container, 0),
        )

    async def wait(self, container: str) -> int:
        self.calls.append(("wait", container))
        return self.exit_codes.get(container, 0)

    async def kill(self, container: str) -> None:
        self.calls.append(("kill", container))
        if container in self.containers:
            self.containers[container] = "exited"
            self.exit_codes[container] = 137

    async def stop(self, container: str, *, grace: int) -> None:
        self.calls.append(("stop", (container, grace)))
        if self.stop_error is not None:
            raise self.stop_error

    async def remove(self, container: str) -> None:
        self.calls.append(("rm", container))
        if self.remove_error is not None:
            raise self.remove_error
        if container not in self.containers:
            raise DockerCommandError(
                ["docker", "rm", "-f", container], 1, f"Error: No such container: {container}"
            )
        del self.containers[container]

    async def list_containers(self, label: str) -> list[str]:
        self.calls.append(("ps", label))
        return list(self.containers)

    async def ping(self) -> bool:
        return True


@pytest.fixture
def fake_docker() -> FakeDocker:
    return FakeDocker()


@pytest.fixture
def registry() -> SandboxRegistry:
    return SandboxRegistry()


@pytest.fixture
def make_process() -> Callable[..., FakeProcess]:
    return FakeProcess
