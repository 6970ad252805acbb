"""DockerCLI — async wrapper around the ``docker`` command line.

Uses the CLI via subprocess (no docker-py dependency).  Every short-lived
call is bounded by ``command_timeout``; the long-lived attach process used by
the runner is returned to the caller, which owns its lifetime.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from codeexec.engine.errors import DockerCommandError
from codeexec.engine.models import ContainerState

logger = logging.getLogger(__name__)


class DockerCLI:
    """Thin async facade over the container-runtime CLI."""

    def __init__(self, binary: str = "docker", *, command_timeout: float = 30.0) -> None:
        self._binary = binary
        self._command_timeout = command_timeout

    @property
    def binary(self) -> str:
        return self._binary

    async def create(self, args: Sequence[str]) -> str:
        """``docker create`` and return the new container id."""
        out = await self._run(["create", *args])
        return out.stdout

    async def start_attached(
        self, container: str, *, interactive: bool = False
    ) -> asyncio.subprocess.Process:
        """Start *container* with its output streams attached to the returned process.

        stdout and stderr of the program arrive on the process's own stdout
        and stderr pipes.  With *interactive*, the process's stdin is wired to
        the container's stdin.
        """
        cmd = [self._binary, "start", "--attach"]
        if interactive:
            cmd.append("--interactive")
        cmd.append(container)
        try:
            return await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE if interactive else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise DockerCommandError(cmd, None, f"Failed to run docker: {exc}") from exc

    async def inspect_state(self, container: str) -> ContainerState:
        out = await self._run(
            ["inspect", "--format", "{{.State.Status}} {{.State.ExitCode}}", container]
        )
        status, _, code = out.stdout.partition(" ")
        return ContainerState(status=status, exit_code=int(code or 0))

    async def wait(self, container: str) -> int:
        """Block until *container* exits and return its exit status."""
        out = await self._run(["wait", container], bounded=False)
        return int(out.stdout) if out.stdout else 1

    async def kill(self, container: str) -> None:
        await self._run(["kill", container], ignore_errors=True)

    async def stop(self, container: str, *, grace: int) -> None:
        # stop may legitimately take the whole grace period before it kills.
        await self._run(["stop", "-t", str(grace), container], extra_time=grace)

    async def remove(self, container: str) -> None:
        await self._run(["rm", "-f", container])

    async def list_containers(self, label: str) -> list[str]:
        """Names of all containers (any state) carrying *label*."""
        out = await self._run(["ps", "-a", "--filter", f"label={label}", "--format", "{{.Names}}"])
        return [line for line in out.stdout.splitlines() if line.strip()]

    async def ping(self) -> bool:
        out = await self._run(["version", "--format", "{{.Server.Version}}"], ignore_errors=True)
        return out.returncode == 0 and bool(out.stdout)

    async def _run(
        self,
        args: Sequence[str],
        *,
        ignore_errors: bool = False,
        bounded: bool = True,
        extra_time: float = 0.0,
    ) -> DockerOutput:
        """Run a docker CLI command and return its output."""
        cmd = [self._binary, *args]
        limit = self._command_timeout + extra_time if bounded else None
        proc: asyncio.subprocess.Process | None = None
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout_bytes, stderr_bytes = await asyncio.wait_for(proc.communicate(), timeout=limit)
        except TimeoutError:
            if proc is not None and proc.returncode is None:
                proc.kill()
                await proc.wait()
            if ignore_errors:
                return DockerOutput(returncode=-1)
            raise DockerCommandError(cmd, None, f"timed out after {limit}s") from None
        except asyncio.CancelledError:
            # The caller gave up; the child must not outlive it.
            if proc is not None and proc.returncode is None:
                proc.kill()
                await asyncio.shield(proc.wait())
            raise
        except OSError as exc:
            if ignore_errors:
                return DockerOutput(returncode=-1)
            raise DockerCommandError(cmd, None, f"Failed to run docker: {exc}") from exc

        stdout = stdout_bytes.decode(errors="replace").strip() if stdout_bytes else ""
        stderr = stderr_bytes.decode(errors="replace").strip() if stderr_bytes else ""

        if proc.returncode != 0:
            logger.debug("%s exited %s: %s", " ".join(cmd[:2]), proc.returncode, stderr)
            if not ignore_errors:
                raise DockerCommandError(cmd, proc.returncode, stderr or stdout)

        return DockerOutput(stdout=stdout, stderr=stderr, returncode=proc.returncode or 0)


class DockerOutput:
    """Simple container for docker CLI output."""

    __slots__ = ("stdout", "stderr", "returncode")

    def __init__(self, stdout: str = "", stderr: str = "", returncode: int = 0) -> None:
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode
