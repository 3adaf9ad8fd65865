"""Services - event handlers wired to the bus."""

from memberhub.services.base import Service, wire_service
from memberhub.services.invalidation import RoleCacheInvalidationService
from memberhub.services.notification import Notice, NotificationService

__all__ = [
    "Service",
    "wire_service",
    "RoleCacheInvalidationService",
    "Notice",
    "NotificationService",
]
