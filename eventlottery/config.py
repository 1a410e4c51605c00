"""Runtime configuration loaded from the environment."""

import logging
from datetime import timedelta

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from eventlottery.core.bus import HandlerFailureMode
from eventlottery.core.errors import ConfigurationError

logger = logging.getLogger("eventlottery.config")


class LotterySettings(BaseSettings):
    """Settings read from ``EVENTLOTTERY_*`` environment variables."""

    model_config = SettingsConfigDict(env_prefix="EVENTLOTTERY_", env_file=".env", extra="ignore")

    project_id: str | None = Field(
        default=None,
        description="Cloud project that hosts the lottery draw callback",
    )
    task_location: str = Field(default="us-central1", min_length=1)
    task_queue: str = Field(default="firestore-lottery", min_length=1)
    callback_function: str = Field(default="lotteryDrawCallback", min_length=1)
    task_horizon: timedelta = Field(
        default=timedelta(days=10),
        description="Lotteries further out than this are left for a later refresh",
    )
    scheduler_max_lead: timedelta = Field(
        default=timedelta(days=30),
        description="Hard cap of the deferred task service",
    )
    refresh_interval: timedelta = Field(
        default=timedelta(days=7),
        description="How often outstanding lotteries are re-examined",
    )
    redis_url: str | None = Field(default=None)
    log_level: str = Field(default="INFO")
    handler_failure_mode: HandlerFailureMode = HandlerFailureMode.NACK
    max_deliveries: int = Field(default=5, gt=0)

    @model_validator(mode="after")
    def _validate_windows(self) -> "LotterySettings":
        if self.task_horizon <= timedelta(0):
            raise ValueError("task_horizon must be positive")
        if self.task_horizon >= self.scheduler_max_lead:
            raise ValueError("task_horizon must be shorter than scheduler_max_lead")
        if self.refresh_interval <= timedelta(0):
            raise ValueError("refresh_interval must be positive")
        if self.refresh_interval > self.task_horizon:
            raise ValueError(
                "refresh_interval must not exceed task_horizon or distant lotteries are missed"
            )
        return self

    def require_project_id(self) -> str:
        if not self.project_id:
            message = "EVENTLOTTERY_PROJECT_ID is not set; cannot address the lottery callback"
            logger.error(message)
            raise ConfigurationError(message)
        return self.project_id

    def callback_url(self) -> str:
        project_id = self.require_project_id()
        return (
            f"https://{self.task_location}-{project_id}.cloudfunctions.net/"
            f"{self.callback_function}"
        )

    def queue_path(self) -> str:
        project_id = self.require_project_id()
        return f"projects/{project_id}/locations/{self.task_location}/queues/{self.task_queue}"
