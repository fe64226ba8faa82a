"""
Health check utilities for Buon Umore services.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import text

from shared.app_logging.logger import get_logger
from shared.config.settings import get_settings
from shared.utils.redis_client import get_redis_client


class HealthStatus(Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


@dataclass
class HealthCheck:
    """Individual health check result."""

    name: str
    status: HealthStatus
    message: str
    response_time_ms: Optional[float] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class HealthChecker:
    """Runs registered checks and folds them into one report."""

    CRITICAL = ("database",)

    def __init__(self, service_name: str):
        self.service_name = service_name
        self.logger = get_logger(f"{service_name}.health")
        self.checks: List[Callable[[], HealthCheck]] = []
        self.settings = get_settings()

    def add_check(self, check_func: Callable[[], HealthCheck]):
        self.checks.append(check_func)

    def _timed(self, name: str, check_fn: Callable[[], Any], ok_message: str, failure_status=HealthStatus.UNHEALTHY) -> HealthCheck:
        start = time.perf_counter()
        try:
            check_fn()
            status, message = HealthStatus.HEALTHY, ok_message
        except Exception as e:
            status, message = failure_status, f"{name} check failed: {e}"
            self.logger.warning(message)
        return HealthCheck(
            name=name,
            status=status,
            message=message,
            response_time_ms=(time.perf_counter() - start) * 1000,
        )

    def check_database(self) -> HealthCheck:
        def check_fn():
            from shared.database.session import SessionLocal

            with SessionLocal() as session:
                session.execute(text("SELECT 1"))

        return self._timed("database", check_fn, "Database connection successful")

    def check_redis(self) -> HealthCheck:
        def check_fn():
            if not get_redis_client(self.service_name).ping():
                raise ConnectionError("ping failed")

        # session events degrade, the store keeps working
        return self._timed("redis", check_fn, "Redis connection successful", HealthStatus.DEGRADED)

    def check_openai(self) -> HealthCheck:
        def check_fn():
            if not self.settings.openai.api_key:
                raise RuntimeError("OPENAI_API_KEY is not configured")

        return self._timed("openai", check_fn, "Article generator configured", HealthStatus.DEGRADED)

    def check_http_endpoint(self, url: str, name: str = "http_endpoint") -> HealthCheck:
        def check_fn():
            import httpx

            with httpx.Client(timeout=5.0) as client:
                client.get(url).raise_for_status()

        return self._timed(name, check_fn, f"HTTP endpoint {url} is accessible")

    def run_all_checks(self) -> Dict[str, Any]:
        results = []
        overall_status = HealthStatus.HEALTHY

        for check_func in self.checks:
            result = check_func()
            results.append(result)
            if result.status == HealthStatus.UNHEALTHY:
                overall_status = HealthStatus.UNHEALTHY
            elif result.status == HealthStatus.DEGRADED and overall_status == HealthStatus.HEALTHY:
                overall_status = HealthStatus.DEGRADED

        return {
            "service": self.service_name,
            "status": overall_status.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": [
                {
                    "name": check.name,
                    "status": check.status.value,
                    "message": check.message,
                    "response_time_ms": check.response_time_ms,
                    "timestamp": check.timestamp.isoformat(),
                }
                for check in results
            ],
        }

    def readiness(self) -> Dict[str, Any]:
        health_data = self.run_all_checks()
        critical = [c for c in health_data["checks"] if c["name"] in self.CRITICAL]
        ready = all(c["status"] == "healthy" for c in critical)
        return {
            "status": "ready" if ready else "not_ready",
            "service": self.service_name,
            "critical_dependencies": {c["name"]: c["status"] for c in critical},
        }


def create_engagement_health_checker() -> HealthChecker:
    checker = HealthChecker("engagement")
    checker.add_check(checker.check_database)
    checker.add_check(checker.check_redis)
    checker.add_check(checker.check_openai)
    return checker


def create_scheduler_health_checker(engagement_url: str) -> HealthChecker:
    checker = HealthChecker("scheduler")
    checker.CRITICAL = ("engagement",)
    checker.add_check(
        lambda: checker.check_http_endpoint(f"{engagement_url}/engagement/health/live", "engagement")
    )
    return checker
