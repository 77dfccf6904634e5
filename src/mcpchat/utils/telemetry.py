"""OpenTelemetry tracing helpers for mcpchat.

Callers use :func:`get_tracer` without caring whether the SDK is installed;
until :func:`configure_telemetry` runs, the API hands out no-op tracers.

Usage::

    from mcpchat.utils.telemetry import get_tracer

    _tracer = get_tracer(__name__)

    with _tracer.start_as_current_span("tool.call") as span:
        span.set_attribute(ATTR_TOOL_NAME, name)

Real export needs the ``otel`` extra: ``pip install mcpchat[otel]``.
"""

from __future__ import annotations

from typing import Any

from opentelemetry import trace

# ---------------------------------------------------------------------------
# Attribute keys
# ---------------------------------------------------------------------------

ATTR_MODEL = "mcpchat.model"
ATTR_MODEL_ATTEMPTED = "mcpchat.model.attempted"
ATTR_MAX_TOKENS = "mcpchat.max_tokens"
ATTR_ROUND = "mcpchat.round"
ATTR_ROUNDS = "mcpchat.rounds"
ATTR_TOOL_NAME = "mcpchat.tool.name"
ATTR_TOOL_ERROR = "mcpchat.tool.error"
ATTR_TOKENS_PROMPT = "mcpchat.tokens.prompt"
ATTR_TOKENS_COMPLETION = "mcpchat.tokens.completion"

_INSTRUMENTATION_NAME = "mcpchat"


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Return a tracer for *name* (no-op unless the SDK is configured)."""
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


def configure_telemetry(
    *,
    service_name: str = "mcpchat",
    export_to_console: bool = True,
    otlp_endpoint: str | None = None,
) -> None:
    """Install an SDK tracer provider (requires ``mcpchat[otel]``).

    Parameters
    ----------
    service_name:
        The ``service.name`` resource attribute.
    export_to_console:
        If ``True``, export spans as JSON to stdout.
    otlp_endpoint:
        If set, export spans via OTLP/gRPC to this endpoint.

    Raises
    ------
    ImportError
        If the ``opentelemetry-sdk`` package is not installed.
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
        msg = (
            "opentelemetry-sdk is required for configure_telemetry(). "
            "Install it with: pip install mcpchat[otel]"
        )
        raise ImportError(msg) from exc

    provider: Any = TracerProvider(resource=Resource.create({"service.name": service_name}))

    if export_to_console:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    if otlp_endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (  # pyright: ignore[reportMissingImports]
                OTLPSpanExporter,
            )
        except ImportError as exc:
            msg = (
                "opentelemetry-exporter-otlp is required for OTLP export. "
                "Install it with: pip install mcpchat[otel]"
            )
            raise ImportError(msg) from exc
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))

    trace.set_tracer_provider(provider)
