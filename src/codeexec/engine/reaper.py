"""SandboxReaper — unconditional, idempotent container teardown."""

from __future__ import annotations

import logging

from codeexec.engine.docker_cli import DockerCLI
from codeexec.engine.errors import CodeExecutionError, DockerCommandError
from codeexec.engine.models import Sandbox, SandboxStatus
from codeexec.engine.registry import SandboxRegistry

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD = 5


class SandboxReaper:
    """Stop and remove sandboxes; never raises.

    The registry entry is claimed first, so concurrent reaps of the same
    sandbox (for example a shutdown sweep racing a finishing execution)
    perform the teardown only once.  A container that is already stopped or
    removed counts as successfully reaped.
    """

    def __init__(
        self,
        docker: DockerCLI,
        registry: SandboxRegistry,
        *,
        grace_period: int = DEFAULT_GRACE_PERIOD,
    ) -> None:
        self._docker = docker
        self._registry = registry
        self._grace_period = grace_period

    async def reap(self, sandbox: Sandbox) -> bool:
        """Tear *sandbox* down.  Returns False only if its container could not be removed."""
        if self._registry.remove(sandbox.id) is None:
            logger.debug("Sandbox %s already reaped", sandbox.id)
            return True

        if await self.reap_container(sandbox.container_name):
            sandbox.mark(SandboxStatus.STOPPED)
            logger.debug("Reaped sandbox %s", sandbox.id)
            return True
        sandbox.mark(SandboxStatus.ERROR)
        return False

    async def reap_container(self, container: str) -> bool:
        """Stop then force-remove *container*.  Returns False if cleanup failed."""
        try:
            await self._docker.stop(container, grace=self._grace_period)
        except DockerCommandError as exc:
            if not exc.is_missing_container:
                # rm -f below kills it anyway.
                logger.warning("Failed to stop container %s: %s", container, exc)

        try:
            await self._docker.remove(container)
        except DockerCommandError as exc:
            if exc.is_missing_container:
                return True
            logger.error("Failed to clean up container %s: %s", container, exc)
            return False
        except CodeExecutionError as exc:
            logger.error("Failed to clean up container %s: %s", container, exc)
            return False
        return True
