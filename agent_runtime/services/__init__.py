"""
Сервисы runtime.
"""

from .service_supervisor import ServiceRecord, ServiceStatus, ServiceSupervisor

__all__ = [
    "ServiceRecord",
    "ServiceStatus",
    "ServiceSupervisor",
]
