"""Prometheus metrics helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Union

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
    write_to_textfile,
)

_REGISTRY = CollectorRegistry()

COMMAND_RESULTS = Counter(
    "hue_commands_total",
    "Bridge HTTP exchanges by outcome",
    ["method", "result"],
    registry=_REGISTRY,
)
COMMAND_LATENCY = Histogram(
    "hue_command_duration_seconds",
    "Time spent waiting for the bridge HTTP API",
    ["method"],
    registry=_REGISTRY,
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5],
)
STREAM_OPENS = Counter(
    "hue_stream_opens_total",
    "Entertainment stream handshakes by outcome",
    ["result"],
    registry=_REGISTRY,
)
STREAM_OPEN_DURATION = Histogram(
    "hue_stream_open_duration_seconds",
    "Time spent performing the streaming handshake",
    ["result"],
    registry=_REGISTRY,
    buckets=[0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30],
)
STREAM_FRAMES = Counter(
    "hue_stream_frames_total",
    "Entertainment frames handed to the transport",
    ["result"],
    registry=_REGISTRY,
)
STREAM_FRAME_BYTES = Counter(
    "hue_stream_frame_bytes_total",
    "Bytes of entertainment frames sent",
    registry=_REGISTRY,
)


def get_registry() -> CollectorRegistry:
    """Return the registry holding the client metrics."""

    return _REGISTRY


def latest_metrics() -> bytes:
    """Render the latest metrics payload."""

    return generate_latest(_REGISTRY)


def write_metrics(path: Union[str, Path]) -> None:
    """Write the registry to ``path`` in the node exporter textfile format."""

    write_to_textfile(str(path), _REGISTRY)


def observe_command(method: str, result: str, duration_seconds: float) -> None:
    """Record the outcome and latency of one bridge HTTP exchange."""

    COMMAND_RESULTS.labels(method=method, result=result).inc()
    COMMAND_LATENCY.labels(method=method).observe(duration_seconds)


def observe_stream_open(result: str, duration_seconds: float) -> None:
    """Record a streaming handshake attempt."""

    STREAM_OPENS.labels(result=result).inc()
    STREAM_OPEN_DURATION.labels(result=result).observe(duration_seconds)


def record_stream_frame(result: str, size: int = 0) -> None:
    """Record a frame send attempt."""

    STREAM_FRAMES.labels(result=result).inc()
    if result == "success":
        STREAM_FRAME_BYTES.inc(size)

