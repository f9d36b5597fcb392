"""Storage health monitoring and the data-protection dashboard."""

from ordersystem.monitoring.health import HealthMonitor
from ordersystem.monitoring.protection import CRITICAL_KEYS, ProtectionDashboard

__all__ = [
    "HealthMonitor",
    "ProtectionDashboard",
    "CRITICAL_KEYS",
]
