"""
Tracks which external dependencies are impaired.

The engine keeps running when GEX data, market context or the position store
misbehave; this tracker records those failures so callers can tell a degraded
run from a healthy one.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from signal_engine.utils.time_utils import Clock, TimeUtils

logger = logging.getLogger(__name__)


class ServiceName(str, Enum):
    GEX = "GEX"
    CONTEXT = "CONTEXT"
    POSITION_STORE = "POSITION_STORE"


@dataclass
class ServiceStatus:
    name: ServiceName
    healthy: bool = True
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    last_success_time: Optional[datetime] = None
    consecutive_failures: int = 0


@dataclass
class DegradedModeStatus:
    degraded: bool
    services: List[ServiceStatus] = field(default_factory=list)
    message: str = ""


class DegradedModeTracker:
    """Thread-safe per-service health record."""

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or TimeUtils.now_utc
        self._lock = threading.Lock()
        self._services: Dict[ServiceName, ServiceStatus] = {
            name: ServiceStatus(name=name) for name in ServiceName
        }

    def record_failure(self, service: ServiceName, error: str) -> None:
        with self._lock:
            status = self._services[service]
            was_healthy = status.healthy
            status.healthy = False
            status.last_error = error
            status.last_error_time = self._clock()
            status.consecutive_failures += 1
        if was_healthy:
            logger.warning(f"Service {service.value} degraded: {error}")

    def record_success(self, service: ServiceName) -> None:
        with self._lock:
            status = self._services[service]
            recovered = not status.healthy
            status.healthy = True
            status.last_success_time = self._clock()
            status.last_error = None
            status.last_error_time = None
            status.consecutive_failures = 0
        if recovered:
            logger.info(f"Service {service.value} recovered")

    def is_service_healthy(self, service: ServiceName) -> bool:
        with self._lock:
            return self._services[service].healthy

    def get_status(self) -> DegradedModeStatus:
        with self._lock:
            services = [ServiceStatus(**vars(s)) for s in self._services.values()]
        unhealthy = [s.name.value for s in services if not s.healthy]
        if unhealthy:
            message = f"System degraded: {', '.join(unhealthy)} service(s) impaired"
        else:
            message = "All services operational"
        return DegradedModeStatus(degraded=bool(unhealthy), services=services, message=message)

    def reset(self) -> None:
        for service in ServiceName:
            self.record_success(service)
