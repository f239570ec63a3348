"""
Configuration settings for the Meet Transcriber.
Bot automation, scheduling, callback delivery and transcript export settings.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from dateutil import tz


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)


class BotSettings(BaseSettings):
    """Bot behavior and browser automation configuration."""
    model_config = SettingsConfigDict(env_prefix="BOT_")

    bot_name: str = Field(default="Meeting Transcriber", description="Display name in the meeting")

    # Browser
    headless: bool = Field(default=True, description="Run Chromium headless")
    slow_mo_ms: int = Field(default=100, description="Delay between Playwright operations (ms)")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="Browser user agent")
    locale: str = Field(default="en-US", description="Browser locale")

    # Page load
    navigation_timeout_seconds: float = Field(default=60, description="Max navigation time")
    network_idle_timeout_seconds: float = Field(default=20, description="Max wait for network idle")
    page_settle_seconds: float = Field(default=3, description="Fixed settle delay after load")
    prejoin_settle_seconds: float = Field(default=2, description="Wait before pre-join setup")

    # Join control
    join_control_wait_seconds: float = Field(default=15, description="Wait for any join control")
    probe_timeout_seconds: float = Field(default=1, description="Per-selector visibility wait")
    post_join_settle_seconds: float = Field(default=2, description="Settle delay after joining")

    # Admission (request-to-join path)
    admission_timeout_seconds: float = Field(default=120, description="Max wait for host admission")
    admission_poll_interval_seconds: float = Field(default=3, description="Admission poll interval")

    # Consent / notification overlays
    overlay_max_attempts: int = Field(default=5, description="Overlay dismissal passes")
    overlay_settle_seconds: float = Field(default=1, description="Pause between overlay passes")

    # Captions
    caption_enable_retries: int = Field(default=5, description="Keyboard shortcut attempts")
    caption_attempt_timeout_seconds: float = Field(default=3, description="Per caption-button wait")
    caption_key_settle_seconds: float = Field(default=0.8, description="Wait after pressing 'c'")
    caption_poll_interval_seconds: float = Field(default=0.3, description="Capture loop interval")

    leave_settle_seconds: float = Field(default=1, description="Wait after clicking leave")


class SchedulerSettings(BaseSettings):
    """Session scheduling configuration."""
    model_config = SettingsConfigDict(env_prefix="SCHEDULER_")

    max_concurrent_meetings: int = Field(default=10, ge=1, description="Worker slots")
    start_grace_seconds: int = Field(default=30, ge=0, description="Allowed past start (seconds)")


class CallbackSettings(BaseSettings):
    """Webhook delivery configuration."""
    model_config = SettingsConfigDict(env_prefix="CALLBACK_")

    max_attempts: int = Field(default=4, ge=1, description="Total delivery attempts")
    backoff_initial_seconds: float = Field(default=2, ge=0, description="First retry delay")
    backoff_max_seconds: float = Field(default=10, ge=0, description="Retry delay ceiling")
    request_timeout_seconds: float = Field(default=30, description="Per-request timeout")


class TranscriptSettings(BaseSettings):
    """Transcript export configuration."""
    model_config = SettingsConfigDict(env_prefix="TRANSCRIPT_")

    path: str = Field(default="/tmp/transcripts", description="Export and screenshot directory")


class ServerSettings(BaseSettings):
    """HTTP server configuration."""
    model_config = SettingsConfigDict(env_prefix="SERVER_")

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8080, description="Bind port")


class Settings(BaseSettings):
    """Main application settings."""
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

    # Nested settings
    bot: BotSettings = Field(default_factory=BotSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    callback: CallbackSettings = Field(default_factory=CallbackSettings)
    transcript: TranscriptSettings = Field(default_factory=TranscriptSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)

    # Application settings
    project_name: str = Field(default="Meet Transcriber", description="API title")
    version: str = Field(default="1.0.0", description="API version")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")
    log_to_file: bool = Field(default=True, description="Write rotating log files under logs/")
    timezone: str = Field(default="auto", description="Timezone for log display (or 'auto')")

    @property
    def transcripts_dir(self) -> str:
        """Get transcripts directory path."""
        return self.transcript.path

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @property
    def tz_info(self):
        """Get timezone info (auto-detected if 'auto')."""
        if self.timezone.lower() == "auto":
            return tz.tzlocal()
        return tz.gettz(self.timezone) or tz.UTC


# Global settings instance
settings = Settings()
