"""
OpenTelemetry tracing configuration and utilities for the review backend.

Spans cover the calls that leave the process:
- Identity lookups against Supabase Auth
- Object-store uploads and removals
- Each item of a draft migration batch

Tokens, emails and proof payloads are masked before they reach a span.
"""

import os
import re
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

_DATA_URI_RE = re.compile(r"data:[\w/+.-]*;base64,[A-Za-z0-9+/=]+")


def setup_tracing(service_name: str = "reviewhub-backend") -> TracerProvider:
    """
    Initialize OpenTelemetry tracing.

    Environment variables:
    - OTEL_EXPORTER_OTLP_ENDPOINT: OTLP collector endpoint (default: http://localhost:4317)
    - OTEL_TRACES_EXPORTER: "otlp", "console", or "none" (default: none)
    """
    resource = Resource.create(
        {
            "service.name": service_name,
            "service.version": "0.1.0",
        }
    )

    provider = TracerProvider(resource=resource)

    exporter_type = os.getenv("OTEL_TRACES_EXPORTER", "none").lower()

    if exporter_type == "otlp":
        endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")
        exporter = OTLPSpanExporter(endpoint=endpoint, insecure=True)
        provider.add_span_processor(BatchSpanProcessor(exporter))
    elif exporter_type == "console":
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    return provider


def get_tracer(name: str = __name__) -> trace.Tracer:
    """Get a tracer instance for creating spans."""
    return trace.get_tracer(name)


def mask_token(token: str | None) -> str:
    """
    Mask an access token or key, keeping the first 8 and last 4 characters.
    """
    if not token:
        return "<none>"

    if len(token) <= 12:
        return "***"

    return f"{token[:8]}...{token[-4:]}"


def mask_email(email: str | None) -> str:
    """Mask an email address, keeping the first character and the domain."""
    if not email:
        return "<none>"

    match = re.match(r"^([^@])([^@]*)(@.+)$", email)
    if match:
        first_char, rest, domain = match.groups()
        return f"{first_char}{'*' * min(len(rest), 5)}{domain}"

    return "***@***"


def mask_user_id(user_id: str | None) -> str:
    """Truncate an author/user id for logs."""
    if not user_id:
        return "<anonymous>"
    return user_id[:8] + "..." if len(user_id) > 8 else user_id


def sanitize_text(content: str | None, max_length: int = 100) -> str:
    """
    Make free text safe for a span: inline media collapsed, long strings cut.
    """
    if not content:
        return "<empty>"

    content = _DATA_URI_RE.sub("<data-uri>", content)

    if len(content) > max_length:
        content = content[:max_length] + "..."

    return content


def safe_span_attributes(**kwargs: Any) -> dict[str, Any]:
    """
    Create span attributes with automatic sanitization.

    - token, secret, key, password -> masked token
    - email -> masked email
    - author_id, user_id -> truncated id
    - body, text, payload, data -> sanitized text
    """
    sanitized = {}

    for key, value in kwargs.items():
        if value is None:
            continue

        lowered = key.lower()
        if any(token_key in lowered for token_key in ["token", "secret", "password"]) or lowered.endswith("key"):
            sanitized[key] = mask_token(str(value))
        elif "email" in lowered:
            sanitized[key] = mask_email(str(value))
        elif lowered in ("author_id", "user_id", "owner_id"):
            sanitized[key] = mask_user_id(str(value))
        elif any(content_key in lowered for content_key in ["body", "text", "payload", "data"]):
            sanitized[key] = sanitize_text(str(value))
        elif isinstance(value, (str, int, float, bool)):
            sanitized[key] = value
        else:
            sanitized[key] = str(value)

    return sanitized
