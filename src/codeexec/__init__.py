"""codeexec — run untrusted code in isolated, resource-capped containers."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from codeexec.engine.models import ExecutionRequest as ExecutionRequest
    from codeexec.engine.service import CodeExecutionEngine as CodeExecutionEngine

_LAZY_EXPORTS = {
    "CodeExecutionEngine": "codeexec.engine.service",
    "ExecutionRequest": "codeexec.engine.models",
}


def __getattr__(name: str) -> object:
    module_path = _LAZY_EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'codeexec' has no attribute {name!r}")
