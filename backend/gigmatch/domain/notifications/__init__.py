"""Notification dispatch exports."""

from .dispatcher import (  # noqa: F401
	NotificationDispatcher,
	NotificationRepository,
	NotificationsNamespace,
	set_namespace,
)
