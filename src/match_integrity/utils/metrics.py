"""
OpenTelemetry metrics configuration for Match Integrity.

Centralized metrics collection using OpenTelemetry. When
OTEL_EXPORTER_OTLP_ENDPOINT is set, metrics are exported over OTLP/HTTP;
otherwise they are collected in-process only.
"""

import logging
import os
import time
from collections.abc import Generator
from contextlib import contextmanager
from typing import Optional

from opentelemetry import metrics
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.metrics import Counter, Histogram, MeterProvider
from opentelemetry.sdk.metrics.export import (
    AggregationTemporality,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import Resource

logger = logging.getLogger(__name__)


class MatchIntegrityMetrics:
    """
    Centralized metrics collection for Match Integrity using OpenTelemetry.

    Provides counters for validations, seals and tamper detections and a
    histogram of operation durations.
    """

    def __init__(
        self, service_name: str = "match-integrity", service_version: str = "1.0.0"
    ):
        """
        Initialize OpenTelemetry metrics with optional OTLP exporter.

        Args:
            service_name: Name of the service for metric identification
            service_version: Version of the service
        """
        self.service_name = service_name
        self.service_version = service_version

        resource = Resource.create(
            {
                "service.name": service_name,
                "service.version": service_version,
                "service.instance.id": os.getenv("HOSTNAME", "local"),
                "deployment.environment": os.getenv("DEPLOYMENT_ENV", "production"),
            }
        )

        metric_readers = []
        otlp_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")

        if otlp_endpoint:
            try:
                otlp_exporter = OTLPMetricExporter(
                    endpoint=otlp_endpoint,
                    headers=self._parse_otlp_headers(),
                    timeout=30,
                    preferred_temporality={
                        Counter: AggregationTemporality.DELTA,
                        Histogram: AggregationTemporality.DELTA,
                    },
                )

                metric_reader = PeriodicExportingMetricReader(
                    exporter=otlp_exporter,
                    export_interval_millis=int(
                        os.getenv("OTEL_METRIC_EXPORT_INTERVAL", "5000")
                    ),
                    export_timeout_millis=int(
                        os.getenv("OTEL_METRIC_EXPORT_TIMEOUT", "30000")
                    ),
                )
                metric_readers.append(metric_reader)

                logger.info(
                    "OpenTelemetry metrics configured",
                    extra={"endpoint": otlp_endpoint},
                )
            except Exception as e:
                logger.warning(
                    f"Failed to configure OTLP metrics exporter: {e}",
                    extra={"error": str(e), "endpoint": otlp_endpoint},
                    exc_info=True,
                )
        else:
            logger.debug(
                "OTEL_EXPORTER_OTLP_ENDPOINT not configured. Metrics will be collected but not exported."
            )

        self.meter_provider = MeterProvider(
            resource=resource, metric_readers=metric_readers
        )
        metrics.set_meter_provider(self.meter_provider)

        self.metric_readers = metric_readers

        self.meter = metrics.get_meter(service_name, service_version)

        self._init_counters()
        self._init_histograms()

    def _parse_otlp_headers(self) -> dict[str, str]:
        """
        Parse OTLP headers from environment variable.

        Returns:
            Dictionary of headers for OTLP exporter
        """
        headers_str = os.getenv("OTEL_EXPORTER_OTLP_HEADERS", "")
        headers = {}

        if headers_str:
            for header in headers_str.split(","):
                if "=" in header:
                    key, value = header.strip().split("=", 1)
                    headers[key] = value

        return headers

    def _init_counters(self) -> None:
        """Initialize counter metrics for tracking events."""

        self.validations_counter = self.meter.create_counter(
            name="validations_total",
            description="Total number of matches validated, by rating",
            unit="1",
        )

        self.critical_issues_counter = self.meter.create_counter(
            name="critical_issues_total",
            description="Total number of critical validation issues by code",
            unit="1",
        )

        self.verifications_counter = self.meter.create_counter(
            name="verifications_total",
            description="Total number of matches sealed, by digest algorithm",
            unit="1",
        )

        self.tamper_counter = self.meter.create_counter(
            name="tamper_detected_total",
            description="Total number of re-verifications that detected a modification",
            unit="1",
        )

        self.batch_errors_counter = self.meter.create_counter(
            name="batch_item_errors_total",
            description="Total number of batch items that failed to process",
            unit="1",
        )

    def _init_histograms(self) -> None:
        """Initialize histogram metrics for tracking distributions."""

        self.operation_duration_histogram = self.meter.create_histogram(
            name="integrity_operation_duration_seconds",
            description="Distribution of integrity operation execution times",
            unit="s",
        )

    def record_validation(
        self,
        rating: str,
        critical_codes: list[str],
        labels: Optional[dict[str, str]] = None,
    ) -> None:
        """
        Record a validation and any critical issues it raised.

        Args:
            rating: Rating bucket of the result
            critical_codes: Codes of the critical issues
            labels: Additional labels for the metric
        """
        attributes = dict(labels or {})
        attributes.update({"service": self.service_name, "rating": rating})
        self.validations_counter.add(1, attributes)

        for code in critical_codes:
            self.critical_issues_counter.add(
                1, {"service": self.service_name, "code": code}
            )

    def record_verification(
        self, algorithm: str, labels: Optional[dict[str, str]] = None
    ) -> None:
        """
        Record a sealed match.

        Args:
            algorithm: Digest algorithm used
            labels: Additional labels for the metric
        """
        attributes = dict(labels or {})
        attributes.update({"service": self.service_name, "algorithm": algorithm})
        self.verifications_counter.add(1, attributes)

    def record_tamper(
        self, modified_fields: list[str], labels: Optional[dict[str, str]] = None
    ) -> None:
        """
        Record a detected modification.

        Args:
            modified_fields: Fields whose fingerprint changed
            labels: Additional labels for the metric
        """
        attributes = dict(labels or {})
        attributes.update(
            {
                "service": self.service_name,
                "field_count": str(len(modified_fields)),
            }
        )
        self.tamper_counter.add(1, attributes)

    def record_batch_item_error(
        self, error_type: str, labels: Optional[dict[str, str]] = None
    ) -> None:
        """
        Record a batch item failure by error type.

        Args:
            error_type: Exception class name
            labels: Additional labels for the metric
        """
        attributes = dict(labels or {})
        attributes.update({"service": self.service_name, "error_type": error_type})
        self.batch_errors_counter.add(1, attributes)

    @contextmanager
    def time_operation(
        self, operation_name: str, labels: Optional[dict[str, str]] = None
    ) -> Generator[None, None, None]:
        """
        Context manager to time an operation and record the duration.

        Args:
            operation_name: Name of the operation being timed
            labels: Additional labels for the metric

        Yields:
            None
        """
        start_time = time.time()
        try:
            yield
        finally:
            duration = time.time() - start_time
            attributes = dict(labels or {})
            attributes.update(
                {"service": self.service_name, "operation": operation_name}
            )
            self.operation_duration_histogram.record(duration, attributes)

    def shutdown(self, timeout_seconds: int = 30) -> bool:
        """
        Shutdown metrics collection and force flush all pending metrics.

        Args:
            timeout_seconds: Maximum time to wait for export completion

        Returns:
            True if shutdown succeeded, False otherwise
        """
        try:
            for reader in self.metric_readers:
                logger.debug(f"Flushing metric reader: {reader}")
                reader.force_flush(timeout_millis=timeout_seconds * 1000)

            self.meter_provider.shutdown()
            return True

        except Exception as e:
            logger.error(f"Error during metrics shutdown: {e}", exc_info=True)
            return False


# Global metrics instance
integrity_metrics = MatchIntegrityMetrics(
    service_name=os.getenv("OTEL_SERVICE_NAME", "match-integrity")
)


def get_metrics() -> MatchIntegrityMetrics:
    """
    Get the global metrics instance.

    Returns:
        Configured MatchIntegrityMetrics instance
    """
    return integrity_metrics
