"""
Milestone notifications.

Fire-and-forget reporting of run milestones to the desktop notifier.
"""

from run_orchestrator.notifications.service import MilestoneNotification, NotificationService

__all__ = ["MilestoneNotification", "NotificationService"]
