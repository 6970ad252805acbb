"""ExecutionRunner — starts a sandbox and races it against a timeout.

The run is an explicit race between two futures: the *completion* future
(feed stdin, pump both output streams, wait for the attach process, read the
container's exit status) and a *timer* future.  Whichever finishes first
decides the outcome; if the timer has fired the result is a timeout, even
when the program finished in the same instant.
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
from enum import IntEnum

from codeexec.engine.docker_cli import DockerCLI
from codeexec.engine.errors import CodeExecutionError, ExecutionTimeoutError
from codeexec.engine.models import RunOutput, Sandbox

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124
TIMEOUT_NOTICE = "Execution timed out"
DEFAULT_MAX_OUTPUT_BYTES = 1024 * 1024
_READ_SIZE = 4096


class StreamType(IntEnum):
    """Stream tags, numbered as in Docker's multiplexed attach protocol."""

    STDOUT = 1
    STDERR = 2


class OutputCollector:
    """Per-stream accumulators fed incrementally as chunks arrive.

    Each stream keeps its own incremental UTF-8 decoder so a multi-byte
    character split across two chunks is decoded correctly.  Bytes past
    *max_bytes* are counted but dropped.
    """

    def __init__(self, max_bytes: int = DEFAULT_MAX_OUTPUT_BYTES) -> None:
        self._max_bytes = max_bytes
        self._parts: dict[StreamType, list[str]] = {s: [] for s in StreamType}
        decoder = codecs.getincrementaldecoder("utf-8")
        self._decoders = {s: decoder(errors="replace") for s in StreamType}
        self._kept: dict[StreamType, int] = dict.fromkeys(StreamType, 0)
        self._dropped: dict[StreamType, int] = dict.fromkeys(StreamType, 0)

    def feed(self, stream: StreamType, data: bytes) -> None:
        room = self._max_bytes - self._kept[stream]
        if room <= 0:
            self._dropped[stream] += len(data)
            return
        if len(data) > room:
            self._dropped[stream] += len(data) - room
            data = data[:room]
        self._kept[stream] += len(data)
        self._parts[stream].append(self._decoders[stream].decode(data))

    def text(self, stream: StreamType) -> str:
        parts = [*self._parts[stream], self._decoders[stream].decode(b"", final=True)]
        self._parts[stream] = ["".join(parts)]
        out = self._parts[stream][0]
        if self._dropped[stream]:
            out += f"\n... [output truncated, {self._dropped[stream]} bytes omitted]"
        return out

    @property
    def stdout(self) -> str:
        return self.text(StreamType.STDOUT)

    @property
    def stderr(self) -> str:
        return self.text(StreamType.STDERR)


class ExecutionRunner:
    """Run a provisioned sandbox to completion or timeout."""

    def __init__(
        self,
        docker: DockerCLI,
        *,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    ) -> None:
        self._docker = docker
        self._max_output_bytes = max_output_bytes

    async def run(self, sandbox: Sandbox, timeout_ms: int) -> RunOutput:
        sandbox.touch()
        collector = OutputCollector(self._max_output_bytes)

        try:
            proc = await self._docker.start_attached(
                sandbox.container_name, interactive=sandbox.stdin is not None
            )
        except CodeExecutionError as exc:
            raise ExecutionTimeoutError(f"Container execution failed: {exc}") from exc

        completion = asyncio.ensure_future(self._complete(sandbox, proc, collector))
        timer = asyncio.ensure_future(asyncio.sleep(timeout_ms / 1000))
        try:
            done, _ = await asyncio.wait({completion, timer}, return_when=asyncio.FIRST_COMPLETED)

            if timer in done:
                return await self._on_timeout(sandbox, completion, collector, timeout_ms)

            timer.cancel()
            try:
                exit_code = completion.result()
            except ExecutionTimeoutError:
                raise
            except (CodeExecutionError, OSError, ValueError) as exc:
                raise ExecutionTimeoutError(f"Container execution failed: {exc}") from exc

            return RunOutput(
                stdout=collector.stdout.strip(),
                stderr=collector.stderr.strip(),
                exit_code=exit_code,
                timed_out=False,
            )
        finally:
            timer.cancel()
            if not completion.done():
                completion.cancel()
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await completion
            await self._release(proc)

    async def _complete(
        self,
        sandbox: Sandbox,
        proc: asyncio.subprocess.Process,
        collector: OutputCollector,
    ) -> int:
        await asyncio.gather(
            self._feed_stdin(proc, sandbox.stdin),
            self._pump(proc.stdout, StreamType.STDOUT, collector),
            self._pump(proc.stderr, StreamType.STDERR, collector),
        )
        await proc.wait()

        state = await self._docker.inspect_state(sandbox.container_name)
        if state.status == "created":
            detail = collector.stderr.strip() or f"attach exited with {proc.returncode}"
            raise ExecutionTimeoutError(f"Container failed to start: {detail}")
        if state.status in ("running", "restarting", "paused"):
            # The attach client went away before the container did.
            return await self._docker.wait(sandbox.container_name)
        return state.exit_code

    async def _on_timeout(
        self,
        sandbox: Sandbox,
        completion: asyncio.Future[int],
        collector: OutputCollector,
        timeout_ms: int,
    ) -> RunOutput:
        logger.info("Sandbox %s timed out after %dms", sandbox.id, timeout_ms)
        completion.cancel()
        # Whatever completion was doing no longer matters once the timer fired.
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await completion
        await self._docker.kill(sandbox.container_name)

        return RunOutput(
            stdout=collector.stdout.strip(),
            stderr=f"{collector.stderr}\n{TIMEOUT_NOTICE}".strip(),
            exit_code=TIMEOUT_EXIT_CODE,
            timed_out=True,
        )

    @staticmethod
    async def _feed_stdin(proc: asyncio.subprocess.Process, data: str | None) -> None:
        if data is None or proc.stdin is None:
            return
        try:
            proc.stdin.write(data.encode("utf-8"))
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # The program exited without reading its input.
            logger.debug("stdin closed early by program")
        finally:
            proc.stdin.close()

    @staticmethod
    async def _pump(
        reader: asyncio.StreamReader | None,
        stream: StreamType,
        collector: OutputCollector,
    ) -> None:
        if reader is None:
            return
        while chunk := await reader.read(_READ_SIZE):
            collector.feed(stream, chunk)

    @staticmethod
    async def _release(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()
