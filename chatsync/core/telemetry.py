"""OpenTelemetry tracing for gateway calls and cache access."""

import importlib
import logging

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from chatsync.config import settings

logger = logging.getLogger(__name__)

# (module, instrumentor class, instrument() kwargs); each ships in the
# "instrumentation" extra and is skipped when not installed
INSTRUMENTORS = (
    ("opentelemetry.instrumentation.httpx", "HTTPXClientInstrumentor", {}),
    ("opentelemetry.instrumentation.sqlalchemy", "SQLAlchemyInstrumentor", {"enable_commenter": True}),
    ("opentelemetry.instrumentation.redis", "RedisInstrumentor", {}),
)


def setup_telemetry() -> bool:
    """Export spans over OTLP, tagged with the operator session.

    Returns:
        True when tracing was enabled
    """
    if not settings.OTEL_EXPORTER_OTLP_ENDPOINT:
        logger.info("Telemetry disabled: OTEL_EXPORTER_OTLP_ENDPOINT not configured")
        return False

    try:
        resource = Resource.create(
            {
                "service.name": settings.OTEL_SERVICE_NAME,
                "chat.gateway.url": settings.GATEWAY_API_URL,
                "chat.company_id": settings.OPERATOR_COMPANY_ID,
                "chat.cache.backend": settings.CACHE_BACKEND,
            }
        )
        tracer_provider = TracerProvider(resource=resource)
        tracer_provider.add_span_processor(
            BatchSpanProcessor(
                OTLPSpanExporter(endpoint=settings.OTEL_EXPORTER_OTLP_ENDPOINT, insecure=True)
            )
        )
        trace.set_tracer_provider(tracer_provider)
        logger.info(f"Telemetry enabled: exporting to {settings.OTEL_EXPORTER_OTLP_ENDPOINT}")
        return True

    except Exception as e:
        logger.warning(f"Failed to setup telemetry: {e}")
        return False


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)


def setup_all_instrumentation() -> list[str]:
    """Enable tracing plus every installed library instrumentation.

    Returns:
        Names of the instrumentors that were enabled
    """
    if not setup_telemetry():
        return []

    enabled = []
    for module_name, class_name, options in INSTRUMENTORS:
        try:
            module = importlib.import_module(module_name)
        except ImportError:
            logger.debug(f"{class_name} not available")
            continue
        getattr(module, class_name)().instrument(**options)
        enabled.append(class_name)

    logger.info(f"Instrumentation enabled: {', '.join(enabled) or 'none'}")
    return enabled
