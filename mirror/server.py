from typing import Sequence

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator

from mirror.routes import router
from mirror.vars import OTLP_ENDPOINT, OTLP_HEADERS, SERVICE_NAME

app = FastAPI()
instrumentator = Instrumentator()

instrumentator.instrument(app).expose(app)


# One of these is recorded per chunk of every streamed response
BODY_EVENT_TYPE = "http.response.body"


def is_body_chunk_span(span: ReadableSpan) -> bool:
    attributes = span.attributes or {}
    return attributes.get("asgi.event.type") == BODY_EVENT_TYPE


class ChunkSpanDroppingExporter(SpanExporter):
    """Forward spans to ``delegate`` minus the per-chunk ASGI send spans."""

    def __init__(self, delegate: SpanExporter):
        self.delegate = delegate

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        kept = [span for span in spans if not is_body_chunk_span(span)]
        if not kept:
            return SpanExportResult.SUCCESS
        return self.delegate.export(kept)

    def shutdown(self):
        return self.delegate.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.delegate.force_flush(timeout_millis)


trace.set_tracer_provider(
    TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
)
tracer_provider = trace.get_tracer_provider()
if OTLP_ENDPOINT:
    otlp_exporter = OTLPSpanExporter(
        endpoint=OTLP_ENDPOINT,
        headers=OTLP_HEADERS or None,
    )
    tracer_provider.add_span_processor(
        BatchSpanProcessor(ChunkSpanDroppingExporter(otlp_exporter))
    )

FastAPIInstrumentor.instrument_app(app)

app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})

app.include_router(router)
