"""Common test fixtures for the tracing core."""

from collections.abc import Generator
from typing import TypeAlias

import pytest
from opentelemetry import context as otel_context
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from cluster_whisperer.tracing import ContextStore, Tracer

OtelEnv: TypeAlias = tuple[Tracer, InMemorySpanExporter]


@pytest.fixture
def otel_env() -> Generator[OtelEnv]:
    """Tracer on an isolated provider, exporting synchronously to memory."""
    exporter = InMemorySpanExporter()
    tracer = Tracer(SimpleSpanProcessor(exporter), service_name="cluster-whisperer-test")
    yield tracer, exporter
    tracer.shutdown()


@pytest.fixture
def store() -> ContextStore:
    return ContextStore()


@pytest.fixture(autouse=True)
def clean_ambient_context() -> Generator[None]:
    """Run every test from an empty OTel context and restore it afterwards."""
    token = otel_context.attach(otel_context.Context())
    yield
    otel_context.detach(token)
