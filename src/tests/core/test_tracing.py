"""Test OpenTelemetry helpers."""

from collections.abc import Iterator
from unittest.mock import patch

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from package_grids.core.tracing import is_tracing_enabled, trace_async, trace_database


@pytest.fixture
def exporter() -> Iterator[InMemorySpanExporter]:
    """Route spans from the decorators into memory."""
    memory = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(memory))
    with patch("package_grids.core.tracing.is_tracing_enabled", return_value=True), \
            patch("package_grids.core.tracing.get_tracer", side_effect=provider.get_tracer):
        yield memory


class TestTracing:
    """Test the tracing decorators."""

    def test_disabled_under_pytest(self) -> None:
        assert is_tracing_enabled() is False

    async def test_disabled_decorator_returns_function(self) -> None:
        async def fetch() -> int:
            return 1

        assert trace_async("fetch")(fetch) is fetch

    async def test_span_recorded(self, exporter: InMemorySpanExporter) -> None:
        @trace_async("sync.fetch_package", source="hex")
        async def fetch(name: str) -> str:
            return name

        assert await fetch("phoenix") == "phoenix"

        (span,) = exporter.get_finished_spans()
        assert span.name == "sync.fetch_package"
        assert span.attributes["source"] == "hex"
        assert span.status.status_code == StatusCode.OK

    async def test_error_recorded(self, exporter: InMemorySpanExporter) -> None:
        @trace_database("paginate")
        async def paginate() -> None:
            raise RuntimeError("no such table")

        with pytest.raises(RuntimeError):
            await paginate()

        (span,) = exporter.get_finished_spans()
        assert span.name == "paginate"
        assert span.attributes["db.operation"] == "paginate"
        assert span.attributes["db.system"] == "sqlite"
        assert span.status.status_code == StatusCode.ERROR
