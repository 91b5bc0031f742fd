"""
Orchestrator Configuration Module.

Defines tunables for image acquisition, update relaying and milestone
notifications.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class OrchestratorConfig(BaseSettings):
    """
    Configuration for run orchestration.

    All settings can be overridden via environment variables with the
    RUN_ORCHESTRATOR_ prefix.

    Example:
        # Via environment variables:
        RUN_ORCHESTRATOR_PROGRESS_INTERVAL_SECONDS=0.5
        RUN_ORCHESTRATOR_PRUNE_AFTER_PULL=false

    Attributes:
        downloading_message: Controller state shown while images download
        progress_interval_seconds: Minimum spacing of progress updates per image (0 = every chunk)
        prune_after_pull: Prune unreferenced images after a successful acquisition
        update_drain_seconds: Grace period for engine updates after the result settles
        notify_on_milestones: Send started/finished/stopped notifications
    """

    model_config = SettingsConfigDict(env_prefix="RUN_ORCHESTRATOR_", case_sensitive=False)

    # Image acquisition
    downloading_message: str = "Downloading required docker images"
    progress_interval_seconds: float = 0.0
    prune_after_pull: bool = True

    # Execution
    update_drain_seconds: float = 0.5

    # Notifications
    notify_on_milestones: bool = True
