"""OpenTelemetry tracing for sandbox executions.

The engine only depends on the OpenTelemetry API; without a configured SDK
every span is a no-op.  ``codeexec run --telemetry`` calls
:func:`configure_telemetry` to export the ``codeexec.execute`` span, which
needs the ``otel`` extra (``pip install codeexec[otel]``).

Console export writes to stderr so ``run --json`` keeps stdout parseable.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from opentelemetry import trace

if TYPE_CHECKING:
    from codeexec.engine.models import ExecutionResult

ATTR_LANGUAGE = "codeexec.language"
ATTR_SANDBOX_ID = "codeexec.sandbox.id"
ATTR_IMAGE = "codeexec.sandbox.image"
ATTR_TIMEOUT_MS = "codeexec.timeout_ms"
ATTR_EXIT_CODE = "codeexec.exit_code"
ATTR_TIMED_OUT = "codeexec.timed_out"
ATTR_DURATION_MS = "codeexec.duration_ms"

_INSTRUMENTATION_NAME = "codeexec"
_SDK_HINT = "Install it with: pip install codeexec[otel]"


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Return a :class:`~opentelemetry.trace.Tracer` for *name*."""
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


def record_result(span: trace.Span, result: ExecutionResult) -> None:
    """Copy the outcome of an execution onto *span*."""
    span.set_attribute(ATTR_EXIT_CODE, result.exit_code)
    span.set_attribute(ATTR_TIMED_OUT, result.timed_out)
    span.set_attribute(ATTR_DURATION_MS, result.execution_time_ms)
    if result.timed_out:
        span.set_status(trace.Status(trace.StatusCode.ERROR, "execution timed out"))


def configure_telemetry(
    *,
    service_name: str = "codeexec",
    otlp_endpoint: str | None = None,
) -> None:
    """Install a tracer provider for this process.

    Spans go to *otlp_endpoint* over OTLP/gRPC when one is given, otherwise
    they are printed to stderr.

    Raises:
        ImportError: the ``otel`` extra is not installed.
    """
    try:
        from opentelemetry.sdk.resources import Resource  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace import TracerProvider  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace.export import (  # pyright: ignore[reportMissingImports]
            BatchSpanProcessor,
            ConsoleSpanExporter,
            SimpleSpanProcessor,
        )
    except ImportError as exc:
        raise ImportError(f"opentelemetry-sdk is required for tracing. {_SDK_HINT}") from exc

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

    if otlp_endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (  # pyright: ignore[reportMissingImports]
                OTLPSpanExporter,
            )
        except ImportError as exc:
            msg = f"opentelemetry-exporter-otlp is required for OTLP export. {_SDK_HINT}"
            raise ImportError(msg) from exc
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
    else:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter(out=sys.stderr)))

    trace.set_tracer_provider(provider)
