"""SandboxProvisioner — creates isolated containers from language profiles."""

from __future__ import annotations

import asyncio
import logging
import uuid

from codeexec.engine.docker_cli import DockerCLI
from codeexec.engine.errors import CodeExecutionError, DockerCommandError, ResourceLimitError
from codeexec.engine.models import LanguageProfile, Sandbox
from codeexec.engine.profiles import CPU_PERIOD, cpu_quota, parse_memory_limit, render_command
from codeexec.engine.registry import SandboxRegistry

logger = logging.getLogger(__name__)

MANAGED_LABEL = "codeexec.managed"
SANDBOX_LABEL = "codeexec.sandbox"
LANGUAGE_LABEL = "codeexec.language"


class SandboxProvisioner:
    """Create a container per profile and register it atomically.

    A sandbox appears in the registry only after ``docker create`` has
    succeeded; any failure before that raises
    :class:`~codeexec.engine.errors.ResourceLimitError` and leaves the
    registry untouched.
    """

    def __init__(
        self,
        docker: DockerCLI,
        registry: SandboxRegistry,
        *,
        name_prefix: str = "codeexec",
        scratch_size: str = "64m",
    ) -> None:
        self._docker = docker
        self._registry = registry
        self._name_prefix = name_prefix
        self._scratch_size = scratch_size

    async def provision(
        self,
        profile: LanguageProfile,
        code: str,
        stdin: str | None = None,
        *,
        memory_limit: str | None = None,
        cpu_limit: float | None = None,
    ) -> Sandbox:
        sandbox_id = uuid.uuid4().hex
        container_name = f"{self._name_prefix}-{sandbox_id[:12]}"

        try:
            args = self.build_create_args(
                profile,
                container_name,
                code,
                sandbox_id=sandbox_id,
                interactive=stdin is not None,
                memory_limit=memory_limit,
                cpu_limit=cpu_limit,
            )
        except ValueError as exc:
            raise ResourceLimitError(f"Invalid resource specification: {exc}") from exc

        try:
            container_id = await self._docker.create(args)
        except CodeExecutionError as exc:
            await self._discard(container_name)
            raise ResourceLimitError(f"Failed to create sandbox: {exc}") from exc
        except asyncio.CancelledError:
            # The daemon may have created it before the client was killed.
            await asyncio.shield(self._discard(container_name))
            raise

        sandbox = Sandbox(
            id=sandbox_id,
            container_id=container_id,
            container_name=container_name,
            language=profile.language,
            stdin=stdin,
        )
        self._registry.register(sandbox)
        logger.debug(
            "Provisioned sandbox %s (%s, image=%s)", sandbox.id, container_name, profile.image
        )
        return sandbox

    def build_create_args(
        self,
        profile: LanguageProfile,
        container_name: str,
        code: str,
        *,
        sandbox_id: str,
        interactive: bool = False,
        memory_limit: str | None = None,
        cpu_limit: float | None = None,
    ) -> list[str]:
        """Build the ``docker create`` arguments for *profile*.

        Request-level limits may tighten the profile's ceilings but never
        loosen them.
        """
        memory = parse_memory_limit(profile.memory_limit)
        if memory_limit is not None:
            memory = min(memory, parse_memory_limit(memory_limit))

        cpus = profile.cpu_limit
        if cpu_limit is not None:
            if cpu_limit <= 0:
                raise ValueError(f"CPU share must be positive: {cpu_limit}")
            cpus = min(cpus, cpu_limit)

        args: list[str] = [
            "--name", container_name,
            "--label", f"{MANAGED_LABEL}=true",
            "--label", f"{SANDBOX_LABEL}={sandbox_id}",
            "--label", f"{LANGUAGE_LABEL}={profile.language.value}",
            "--memory", str(memory),
            "--memory-swap", str(memory),
            "--cpu-period", str(CPU_PERIOD),
            "--cpu-quota", str(cpu_quota(cpus)),
            "--pids-limit", str(profile.pids_limit),
            "--network", profile.network_mode,
            "--cap-drop", "ALL",
            "--user", profile.user,
            "--workdir", profile.working_dir,
        ]

        if profile.no_new_privileges:
            args.extend(["--security-opt", "no-new-privileges:true"])

        if profile.read_only_rootfs:
            args.append("--read-only")
            # The working directory is the only writable location.
            args.extend([
                "--tmpfs",
                f"{profile.working_dir}:rw,exec,nosuid,size={self._scratch_size},mode=1777",
            ])

        for limit in profile.ulimits:
            args.extend(["--ulimit", f"{limit.name}={limit.soft}:{limit.hard}"])

        env = {"HOME": profile.working_dir, **profile.env}
        for key, value in env.items():
            args.extend(["-e", f"{key}={value}"])

        if interactive:
            args.append("--interactive")

        args.append(profile.image)
        args.extend(render_command(profile, code))
        return args

    async def _discard(self, container_name: str) -> None:
        """Force-remove a container that never made it into the registry."""
        try:
            await self._docker.remove(container_name)
        except DockerCommandError as exc:
            if not exc.is_missing_container:
                logger.warning("Failed to discard container %s: %s", container_name, exc)
