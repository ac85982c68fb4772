"""Tracing helpers for the model client, decision engine and task agent.

Modules obtain a tracer with :func:`get_tracer`; until
:func:`configure_telemetry` installs an SDK provider every span is a no-op.
Span attributes are set through :func:`set_span_attributes`, which skips
values that are not known yet (e.g. token usage a provider did not report).

Exporters need the ``otel`` extra: ``pip install ops-agent[otel]``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from opentelemetry import trace
from opentelemetry.util.types import AttributeValue

logger = logging.getLogger(__name__)

# Model client
ATTR_MODEL = "opsagent.model"
ATTR_PROVIDER = "opsagent.provider"
ATTR_ATTEMPTS = "opsagent.model.attempts"
ATTR_TOKENS_PROMPT = "opsagent.tokens.prompt"
ATTR_TOKENS_COMPLETION = "opsagent.tokens.completion"
ATTR_TOKENS_TOTAL = "opsagent.tokens.total"
ATTR_FINISH_REASON = "opsagent.finish_reason"

# Task agent
ATTR_AGENT_ID = "opsagent.agent.id"
ATTR_TENANT_ID = "opsagent.tenant.id"
ATTR_TASK_ID = "opsagent.task.id"
ATTR_EVENT_TYPE = "opsagent.event.type"
ATTR_CORRELATION_ID = "opsagent.correlation_id"

# Decisions
ATTR_DECISION_ID = "opsagent.decision.id"
ATTR_DECISION_STATUS = "opsagent.decision.status"
ATTR_DECISION_INTENT = "opsagent.decision.intent"
ATTR_DECISION_CONFIDENCE = "opsagent.decision.confidence"
ATTR_ACTION_COUNT = "opsagent.decision.action_count"
ATTR_FALLBACK = "opsagent.decision.fallback"

_INSTRUMENTATION_NAME = "opsagent"


def get_tracer(name: str | None = None) -> trace.Tracer:
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


def set_span_attributes(span: trace.Span, attributes: Mapping[str, AttributeValue | None]) -> None:
    """Set every attribute in *attributes* whose value is not ``None``."""
    for key, value in attributes.items():
        if value is not None:
            span.set_attribute(key, value)


def configure_telemetry(
    *,
    service_name: str = "opsagent",
    export_to_console: bool = True,
    otlp_endpoint: str | None = None,
) -> Any:
    """Install an SDK tracer provider and return it.

    Spans go to stdout when *export_to_console* is set (one span per line,
    exported synchronously) and to an OTLP/gRPC collector at
    *otlp_endpoint* (batched).  With neither, spans are recorded but
    dropped, which is logged as a warning.

    Raises:
        ImportError: If ``opentelemetry-sdk`` (or, for OTLP,
            ``opentelemetry-exporter-otlp``) is not installed.
    """
    try:
        from opentelemetry.sdk.resources import Resource  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
        from opentelemetry.sdk.trace import TracerProvider  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
    except ImportError as exc:
        msg = (
            "opentelemetry-sdk is required for configure_telemetry(). "
            "Install it with: pip install ops-agent[otel]"
        )
        raise ImportError(msg) from exc

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))  # pyright: ignore[reportUnknownVariableType,reportUnknownMemberType]
    processors = _span_processors(export_to_console=export_to_console, otlp_endpoint=otlp_endpoint)
    if not processors:
        logger.warning("Telemetry enabled for %s without an exporter; spans will be dropped", service_name)
    for processor in processors:
        provider.add_span_processor(processor)  # pyright: ignore[reportUnknownMemberType]

    trace.set_tracer_provider(provider)  # pyright: ignore[reportUnknownArgumentType]
    logger.info(
        "Telemetry configured for %s (console=%s, otlp=%s)", service_name, export_to_console, otlp_endpoint or "off"
    )
    return provider  # pyright: ignore[reportUnknownVariableType]


def _span_processors(*, export_to_console: bool, otlp_endpoint: str | None) -> list[Any]:
    from opentelemetry.sdk.trace.export import (  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
        BatchSpanProcessor,
        ConsoleSpanExporter,
        SimpleSpanProcessor,
    )

    processors: list[Any] = []
    if export_to_console:
        processors.append(SimpleSpanProcessor(ConsoleSpanExporter()))
    if otlp_endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
        except ImportError as exc:
            msg = (
                "opentelemetry-exporter-otlp is required for OTLP export. "
                "Install it with: pip install ops-agent[otel]"
            )
            raise ImportError(msg) from exc
        processors.append(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
    return processors
