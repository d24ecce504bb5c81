"""
Prometheus metrics for the contentpipe service.
"""
from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry
import psutil
import os


class Metrics:
    """
    Centralized metrics for the contentpipe service.
    """

    def __init__(self, service_name: str = "contentpipe", version: str = "0.1.0", registry=None):
        self.service_name = service_name
        self.version = version
        self.registry = registry or CollectorRegistry()

        # HTTP Metrics
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["service", "method", "path", "status"],
            registry=self.registry,
        )

        self.http_request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["service", "method", "path"],
            registry=self.registry,
        )

        self.http_requests_active = Gauge(
            "http_requests_active",
            "Number of active HTTP requests",
            ["service"],
            registry=self.registry,
        )
        self.http_requests_active.labels(service=service_name).set(0)

        # Application Info
        self.app_info = Info(
            "app",
            "Application information",
            registry=self.registry,
        )
        self.app_info.info({"service": service_name, "version": version})

        self.app_up = Gauge(
            "app_up",
            "Application up status (1=up, 0=down)",
            ["service", "version"],
            registry=self.registry,
        )
        self.app_up.labels(service=service_name, version=version).set(1)

        # Event log
        self.events_appended_total = Counter(
            "contentpipe_events_appended_total",
            "Total events appended to the event log",
            ["event_category", "severity"],
            registry=self.registry,
        )

        # Agent runtime
        self.agent_runs_total = Counter(
            "contentpipe_agent_runs_total",
            "Agent executions by outcome",
            ["agent", "outcome"],
            registry=self.registry,
        )

        self.agent_run_duration = Histogram(
            "contentpipe_agent_run_duration_seconds",
            "Agent execution duration in seconds",
            ["agent"],
            registry=self.registry,
        )

        self.agent_runs_active = Gauge(
            "contentpipe_agent_runs_active",
            "Agent executions currently in flight",
            ["agent"],
            registry=self.registry,
        )

        # Resilience primitives
        self.upload_retries_total = Counter(
            "contentpipe_upload_retries_total",
            "Storage upload retries",
            ["backend"],
            registry=self.registry,
        )

        self.model_fallbacks_total = Counter(
            "contentpipe_model_fallbacks_total",
            "Generation calls that fell back to the secondary model",
            ["primary_model", "fallback_model", "reason"],
            registry=self.registry,
        )

        # System Metrics
        self._setup_process_metrics()

    def _setup_process_metrics(self):
        """Set up process-level metrics using psutil."""
        self.process_cpu_seconds = Counter(
            "process_cpu_seconds_total",
            "Total CPU time consumed by process",
            ["service"],
            registry=self.registry,
        )

        self.process_memory_bytes = Gauge(
            "process_resident_memory_bytes",
            "Resident memory size in bytes",
            ["service"],
            registry=self.registry,
        )

        self.process_open_fds = Gauge(
            "process_open_fds",
            "Number of open file descriptors",
            ["service"],
            registry=self.registry,
        )

        self._last_cpu_total = 0.0
        self.update_system_metrics()

    def update_system_metrics(self):
        """Update system metrics from psutil."""
        try:
            process = psutil.Process(os.getpid())

            cpu_times = process.cpu_times()
            cpu_total = cpu_times.user + cpu_times.system
            cpu_diff = cpu_total - self._last_cpu_total
            if cpu_diff > 0:
                self.process_cpu_seconds.labels(service=self.service_name).inc(cpu_diff)
            self._last_cpu_total = cpu_total

            memory_info = process.memory_info()
            self.process_memory_bytes.labels(service=self.service_name).set(memory_info.rss)

            try:
                self.process_open_fds.labels(service=self.service_name).set(process.num_fds())
            except AttributeError:
                # num_fds() not available on all platforms
                pass

        except psutil.Error:
            pass

    def record_event_appended(self, event_category: str, severity: str):
        self.events_appended_total.labels(event_category=event_category, severity=severity).inc()

    def record_agent_run(self, agent: str, outcome: str, duration_seconds: float):
        self.agent_runs_total.labels(agent=agent, outcome=outcome).inc()
        self.agent_run_duration.labels(agent=agent).observe(duration_seconds)

    def record_upload_retry(self, backend: str):
        self.upload_retries_total.labels(backend=backend).inc()

    def record_model_fallback(self, primary_model: str, fallback_model: str, reason: str):
        self.model_fallbacks_total.labels(
            primary_model=primary_model, fallback_model=fallback_model, reason=reason
        ).inc()


_metrics: Metrics | None = None


def get_metrics() -> Metrics:
    """Process-wide metrics instance, created on first use."""
    global _metrics
    if _metrics is None:
        _metrics = Metrics()
    return _metrics


def set_metrics(metrics: Metrics) -> None:
    global _metrics
    _metrics = metrics
