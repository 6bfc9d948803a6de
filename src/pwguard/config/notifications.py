"""
Notification configuration module.

Contains alert delivery settings:
- DesktopNotificationConfig: notify-send popups on the user's session
- WebhookEndpointConfig: HTTP endpoint receiving a JSON alert
- NotificationsConfig: combined settings
"""

from pydantic import BaseModel, Field, field_validator

__all__ = ["DesktopNotificationConfig", "NotificationsConfig", "WebhookEndpointConfig"]


class DesktopNotificationConfig(BaseModel):
    """Desktop notification settings."""

    enabled: bool = Field(
        default=True,
        description="Show a desktop notification when remediation is exhausted",
    )
    app_name: str = Field(
        default="pwguard",
        description="Application name passed to notify-send",
    )
    timeout: float = Field(
        default=10.0,
        gt=0,
        description="Seconds to wait for notify-send",
    )


class WebhookEndpointConfig(BaseModel):
    """A single webhook endpoint."""

    url: str = Field(description="Target URL")
    method: str = Field(
        default="POST",
        description="HTTP method (POST or PUT)",
    )
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Request headers; ${VAR} is expanded from the environment",
    )
    timeout: float = Field(
        default=10.0,
        gt=0,
        description="Request timeout in seconds",
    )

    @field_validator("method")
    @classmethod
    def validate_method(cls, v: str) -> str:
        """Only methods with a body are useful here."""
        method = v.upper()
        if method not in ("POST", "PUT"):
            raise ValueError("Webhook method must be POST or PUT")
        return method

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Require an http(s) URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Webhook url must start with http:// or https://")
        return v


class NotificationsConfig(BaseModel):
    """Alert delivery settings."""

    desktop: DesktopNotificationConfig = Field(
        default_factory=DesktopNotificationConfig,
        description="Desktop notification settings",
    )
    webhooks: list[WebhookEndpointConfig] = Field(
        default_factory=list,
        description="Webhook endpoints notified on ladder exhaustion",
    )
