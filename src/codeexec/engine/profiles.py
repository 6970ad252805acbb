"""Language profile table and resource-spec helpers.

Every profile shares the same isolation posture: no network, read-only root,
all capabilities dropped, no-new-privileges, a non-root user and small
``nofile``/``nproc`` ulimits.  Code is written into the scratch working
directory only for languages that need a source file; interpreters receive
it as an argv element.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from types import MappingProxyType

from codeexec.engine.models import LanguageProfile, SupportedLanguage, Ulimit

SOURCE_PLACEHOLDER = "{source}"
CPU_PERIOD = 100_000
MIN_CPU_QUOTA = 1_000

DEFAULT_ULIMITS = (
    Ulimit(name="nofile", soft=64, hard=64),
    Ulimit(name="nproc", soft=32, hard=32),
)

_MEMORY_RE = re.compile(r"^(\d+)([kmg]?)b?$", re.IGNORECASE)
_MEMORY_UNITS = {"": 1, "k": 1024, "m": 1024**2, "g": 1024**3}


def _write_and_run(filename: str, script: str) -> tuple[str, ...]:
    # The code travels as $1 so it never needs shell quoting.
    return ("sh", "-c", f'printf "%s" "$1" > {filename} && {script}', "sh", SOURCE_PLACEHOLDER)


DEFAULT_PROFILES: Mapping[SupportedLanguage, LanguageProfile] = MappingProxyType({
    SupportedLanguage.JAVASCRIPT: LanguageProfile(
        language=SupportedLanguage.JAVASCRIPT,
        image="node:20-alpine",
        memory_limit="128m",
        timeout_ms=30_000,
        user="node",
        ulimits=DEFAULT_ULIMITS,
        command=("node", "-e", SOURCE_PLACEHOLDER),
    ),
    SupportedLanguage.TYPESCRIPT: LanguageProfile(
        language=SupportedLanguage.TYPESCRIPT,
        image="node:22-alpine",
        memory_limit="128m",
        timeout_ms=30_000,
        user="node",
        ulimits=DEFAULT_ULIMITS,
        command=_write_and_run(
            "main.ts", "node --experimental-strip-types --no-warnings main.ts"
        ),
    ),
    SupportedLanguage.PYTHON: LanguageProfile(
        language=SupportedLanguage.PYTHON,
        image="python:3.12-alpine",
        memory_limit="128m",
        timeout_ms=30_000,
        ulimits=DEFAULT_ULIMITS,
        env={"PYTHONDONTWRITEBYTECODE": "1", "PYTHONUNBUFFERED": "1"},
        command=("python3", "-c", SOURCE_PLACEHOLDER),
    ),
    SupportedLanguage.JAVA: LanguageProfile(
        language=SupportedLanguage.JAVA,
        image="eclipse-temurin:17-jdk-alpine",
        memory_limit="256m",
        timeout_ms=45_000,
        ulimits=DEFAULT_ULIMITS,
        command=_write_and_run(
            "Main.java", "java -XX:-UsePerfData -Djava.io.tmpdir=/sandbox Main.java"
        ),
    ),
    SupportedLanguage.GO: LanguageProfile(
        language=SupportedLanguage.GO,
        image="golang:1.22-alpine",
        memory_limit="128m",
        timeout_ms=30_000,
        ulimits=DEFAULT_ULIMITS,
        env={
            "GOCACHE": "/sandbox/.cache/go-build",
            "GOPATH": "/sandbox/go",
            "GOTMPDIR": "/sandbox",
            "CGO_ENABLED": "0",
        },
        command=_write_and_run("main.go", "go run main.go"),
    ),
    SupportedLanguage.RUST: LanguageProfile(
        language=SupportedLanguage.RUST,
        image="rust:1.79-alpine",
        memory_limit="256m",
        timeout_ms=60_000,
        ulimits=DEFAULT_ULIMITS,
        env={"TMPDIR": "/sandbox"},
        command=_write_and_run("main.rs", "rustc -o main main.rs && ./main"),
    ),
})


def parse_memory_limit(limit: str) -> int:
    """Convert ``'128m'``-style sizes to bytes.

    Accepts an optional K/M/G suffix (case-insensitive, optional trailing
    ``b``).  Raises ``ValueError`` for anything else.
    """
    match = _MEMORY_RE.match(limit.strip())
    if not match:
        raise ValueError(f"Invalid memory limit format: {limit!r}")
    value = int(match.group(1)) * _MEMORY_UNITS[match.group(2).lower()]
    if value <= 0:
        raise ValueError(f"Memory limit must be positive: {limit!r}")
    return value


def cpu_quota(share: float, period: int = CPU_PERIOD) -> int:
    """Translate a CPU share (fraction of one core) into a CFS quota."""
    if share <= 0:
        raise ValueError(f"CPU share must be positive: {share}")
    return max(int(share * period), MIN_CPU_QUOTA)


def render_command(profile: LanguageProfile, code: str) -> list[str]:
    """Return the profile's argv with the source placeholder filled in."""
    return [code if part == SOURCE_PLACEHOLDER else part for part in profile.command]
