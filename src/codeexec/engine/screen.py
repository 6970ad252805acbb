"""SecurityScreen — rejects source that contains known-dangerous constructs.

Pure logic, no I/O.  Each language has an ordered tuple of
:class:`ScreenRule` entries; a generic list of shell/system signatures is
checked for every language afterwards.  The first rule that matches raises
:class:`~codeexec.engine.errors.SecurityError` (first-match-fails).

The generic signatures are matched against raw source text, so a string
literal such as ``"chmod"`` is rejected too.  That imprecision is accepted:
the container's OS-level isolation is the real boundary, this screen only
turns away obviously hostile payloads before anything is allocated.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence

from pydantic import BaseModel, Field

from codeexec.engine.errors import SecurityError
from codeexec.engine.models import SupportedLanguage

logger = logging.getLogger(__name__)


class ScreenRule(BaseModel):
    """A single dangerous-construct pattern."""

    pattern: str = Field(..., description="Regular expression searched for in the source.")
    reason: str = Field(default="", description="Human-readable category of the danger.")


def _rules(*pairs: tuple[str, str]) -> tuple[ScreenRule, ...]:
    return tuple(ScreenRule(pattern=p, reason=r) for p, r in pairs)


LANGUAGE_RULES: Mapping[SupportedLanguage, tuple[ScreenRule, ...]] = {
    SupportedLanguage.JAVASCRIPT: _rules(
        (r"""require\s*\(\s*['"]fs['"]""", "file system access"),
        (r"""require\s*\(\s*['"]child_process['"]""", "process execution"),
        (r"""require\s*\(\s*['"]net['"]""", "network access"),
        (r"eval\s*\(", "dynamic code execution"),
        (r"Function\s*\(", "function constructor"),
        (r"process\.", "process object access"),
        (r"__dirname|__filename", "file system paths"),
    ),
    SupportedLanguage.TYPESCRIPT: _rules(
        (r"""import.*['"]fs['"]""", "file system access"),
        (r"""import.*['"]child_process['"]""", "process execution"),
        (r"""import.*['"]net['"]""", "network access"),
        (r"eval\s*\(", "dynamic code execution"),
        (r"Function\s*\(", "function constructor"),
        (r"process\.", "process object access"),
    ),
    SupportedLanguage.PYTHON: _rules(
        (r"import\s+os", "os module"),
        (r"import\s+subprocess", "subprocess module"),
        (r"import\s+socket", "socket module"),
        (r"exec\s*\(", "dynamic execution"),
        (r"eval\s*\(", "dynamic evaluation"),
        (r"__import__\s*\(", "dynamic import"),
        (r"open\s*\(", "file operations"),
    ),
    SupportedLanguage.JAVA: _rules(
        (r"Runtime\.getRuntime\(\)", "runtime access"),
        (r"ProcessBuilder", "process builder"),
        (r"System\.exit", "system exit"),
        (r"File\s*\(", "file operations"),
        (r"FileInputStream|FileOutputStream", "file streams"),
    ),
    SupportedLanguage.GO: _rules(
        (r"os\.Exec", "process execution"),
        (r"os\.Exit", "system exit"),
        (r"net\.", "network operations"),
        (r"syscall\.", "system calls"),
        (r"unsafe\.", "unsafe operations"),
    ),
    SupportedLanguage.RUST: _rules(
        (r"std::process::Command", "process execution"),
        (r"std::fs::", "file system"),
        (r"std::net::", "network operations"),
        (r"unsafe\s*\{", "unsafe block"),
    ),
}

GENERIC_RULES: tuple[ScreenRule, ...] = _rules(
    (r"rm\s+-rf", "destructive file deletion"),
    (r"sudo", "privilege escalation"),
    (r"chmod", "permission changes"),
    (r"curl|wget", "network requests"),
    (r"/etc/passwd", "system files"),
    (r"/proc/", "process information"),
    (r"fork\(\)", "process forking"),
)


class SecurityScreen:
    """Compiled, ordered pattern sets keyed by language."""

    def __init__(
        self,
        rules: Mapping[SupportedLanguage, Sequence[ScreenRule]] | None = None,
        generic_rules: Sequence[ScreenRule] | None = None,
        *,
        extra_patterns: Mapping[SupportedLanguage, Iterable[str]] | None = None,
    ) -> None:
        source = rules if rules is not None else LANGUAGE_RULES
        self._compiled: dict[SupportedLanguage, list[tuple[re.Pattern[str], ScreenRule]]] = {
            lang: self._compile(lang_rules) for lang, lang_rules in source.items()
        }
        for lang, patterns in (extra_patterns or {}).items():
            extra = [ScreenRule(pattern=p, reason="configured pattern") for p in patterns]
            self._compiled.setdefault(lang, []).extend(self._compile(extra))
        self._generic = self._compile(GENERIC_RULES if generic_rules is None else generic_rules)

    def screen(self, code: str, language: SupportedLanguage) -> str:
        """Return *code* unchanged, or raise on the first dangerous match."""
        for compiled, rule in (*self._compiled.get(language, ()), *self._generic):
            if compiled.search(code):
                logger.info(
                    "Rejected %s submission: %s (%s)", language.value, rule.reason, rule.pattern
                )
                raise SecurityError(
                    f"Code contains potentially dangerous operations: {rule.reason}",
                    language=language.value,
                    pattern=rule.pattern,
                )
        return code

    def rules_for(self, language: SupportedLanguage) -> list[ScreenRule]:
        """All rules applied to *language*, in evaluation order."""
        return [rule for _, rule in (*self._compiled.get(language, ()), *self._generic)]

    @staticmethod
    def _compile(rules: Iterable[ScreenRule]) -> list[tuple[re.Pattern[str], ScreenRule]]:
        return [(re.compile(rule.pattern), rule) for rule in rules]
