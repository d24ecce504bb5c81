"""
Health checks for liveness and readiness probes.
"""
import time
from typing import Dict, Any
import psutil
from .event_models import utcnow
from .logging import get_logger, SERVICE_NAME
from .services.event_log import EventLog

logger = get_logger()


class HealthChecker:
    """
    Health checker for the contentpipe service.

    Provides:
    - Liveness checks (is the service running?)
    - Readiness checks (can the service handle traffic?)
    """

    def __init__(self, event_log: EventLog, service_name: str = SERVICE_NAME, version: str = "0.1.0"):
        self.event_log = event_log
        self.service_name = service_name
        self.version = version

    def _timestamp(self) -> str:
        return utcnow().isoformat().replace("+00:00", "Z")

    def liveness(self) -> Dict[str, Any]:
        return {
            "status": "ok",
            "service": self.service_name,
            "version": self.version,
            "timestamp": self._timestamp(),
        }

    async def readiness(self) -> Dict[str, Any]:
        """
        Readiness check.

        Checks:
        - Event store backend reachability
        - Disk space availability
        - Memory availability

        A check in ``error`` makes the service ``not_ready``; ``warning`` does not.
        """
        checks = {
            "event_store": await self._check_event_store(),
            "disk_space": self._check_disk_space(),
            "memory": self._check_memory(),
        }
        overall_status = "not_ready" if any(c["status"] == "error" for c in checks.values()) else "ready"

        return {
            "status": overall_status,
            "service": self.service_name,
            "version": self.version,
            "timestamp": self._timestamp(),
            "checks": checks,
        }

    async def _check_event_store(self) -> Dict[str, Any]:
        start = time.time()
        try:
            healthy = await self.event_log.health_check()
        except Exception as e:
            logger.warning("event_store_health_check_failed", error=str(e))
            return {"status": "error", "backend": self.event_log.backend, "error": str(e)}

        return {
            "status": "ok" if healthy else "error",
            "backend": self.event_log.backend,
            "latency_ms": round((time.time() - start) * 1000, 2),
        }

    def _check_disk_space(self, threshold_gb: float = 1.0) -> Dict[str, Any]:
        """
        Check available disk space.

        Args:
            threshold_gb: Minimum available disk space in GB (default: 1.0)
        """
        try:
            disk = psutil.disk_usage("/")
            available_gb = disk.free / (1024**3)

            if available_gb < threshold_gb:
                status = "error"
            elif available_gb < threshold_gb * 2:
                status = "warning"
            else:
                status = "ok"

            return {
                "status": status,
                "available_gb": round(available_gb, 2),
                "total_gb": round(disk.total / (1024**3), 2),
                "used_percent": disk.percent,
            }

        except Exception as e:
            logger.warning("disk_health_check_failed", error=str(e))
            return {"status": "error", "error": str(e)}

    def _check_memory(self, threshold_mb: float = 50.0) -> Dict[str, Any]:
        try:
            memory = psutil.virtual_memory()
            available_mb = memory.available / (1024**2)

            if available_mb < threshold_mb:
                status = "error"
            elif available_mb < threshold_mb * 2:
                status = "warning"
            else:
                status = "ok"

            return {
                "status": status,
                "available_mb": round(available_mb, 2),
                "total_mb": round(memory.total / (1024**2), 2),
                "used_percent": memory.percent,
            }

        except Exception as e:
            logger.warning("memory_health_check_failed", error=str(e))
            return {"status": "error", "error": str(e)}
