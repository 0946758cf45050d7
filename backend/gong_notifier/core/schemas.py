"""
Gong Notifier - Pydantic Schemas
================================

Wire models exchanged with the CI host: the stage-status event, the plugin
settings snapshot and the response envelopes.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


# ==========================================================================
# Base Schemas
# ==========================================================================

class HostSchema(BaseModel):
    """Base schema for host payloads, which use dashed keys."""

    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        frozen=True,
    )


# ==========================================================================
# Inbound Event
# ==========================================================================

class StageStateChange(HostSchema):
    """
    One stage lifecycle event.

    ``state`` stays a raw string here; the classifier decides whether it is
    a known state.
    """

    pipeline_name: str = Field(alias="pipeline-name", min_length=1)
    pipeline_counter: int = Field(alias="pipeline-counter", ge=1)
    stage_name: str = Field(alias="stage-name", min_length=1)
    stage_counter: int = Field(alias="stage-counter", ge=1)
    state: str


# ==========================================================================
# Plugin Settings
# ==========================================================================

DEFAULT_SERVER_URL = "http://localhost:8153/go"


class PluginSettings(HostSchema):
    """
    Plugin configuration snapshot stored by the CI host.

    Compared by value: any difference means the history cache and the
    listeners have to be rebuilt.
    """

    server_url: str = Field(default=DEFAULT_SERVER_URL, alias="server-url")
    rest_user: Optional[str] = Field(default=None, alias="rest-user")
    rest_password: Optional[str] = Field(default=None, alias="rest-password", repr=False)
    smtp_host: str = Field(default="localhost", alias="smtp-host")
    smtp_port: int = Field(default=25, alias="smtp-port", ge=1, le=65535)
    sender_email: EmailStr = Field(default="gong@example.com", alias="sender-email")
    fallback_recipients: tuple[EmailStr, ...] = Field(default=(), alias="fallback-recipients")

    @field_validator("rest_user", "rest_password", mode="before")
    @classmethod
    def blank_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("fallback_recipients", mode="before")
    @classmethod
    def split_recipients(cls, v):
        """The host stores every value as a string; accept a comma separated list."""
        if isinstance(v, str):
            return tuple(part.strip() for part in v.split(",") if part.strip())
        return v

    @field_validator("server_url")
    @classmethod
    def validate_server_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("Server URL must start with http:// or https://")
        return v.rstrip("/")


# Field configuration returned for go.plugin-settings.get-configuration
PLUGIN_SETTINGS_FIELDS: dict[str, dict] = {
    "server-url": {
        "display-name": "GoCD server URL",
        "default-value": DEFAULT_SERVER_URL,
        "required": True,
        "secure": False,
        "display-order": "0",
    },
    "rest-user": {
        "display-name": "REST API user",
        "default-value": "",
        "required": False,
        "secure": False,
        "display-order": "1",
    },
    "rest-password": {
        "display-name": "REST API password",
        "default-value": "",
        "required": False,
        "secure": True,
        "display-order": "2",
    },
    "smtp-host": {
        "display-name": "SMTP host",
        "default-value": "localhost",
        "required": True,
        "secure": False,
        "display-order": "3",
    },
    "smtp-port": {
        "display-name": "SMTP port",
        "default-value": "25",
        "required": True,
        "secure": False,
        "display-order": "4",
    },
    "sender-email": {
        "display-name": "Sender address",
        "default-value": "gong@example.com",
        "required": True,
        "secure": False,
        "display-order": "5",
    },
    "fallback-recipients": {
        "display-name": "Always notify (comma separated)",
        "default-value": "",
        "required": False,
        "secure": False,
        "display-order": "6",
    },
}


# ==========================================================================
# Responses
# ==========================================================================

class SettingsValidationError(BaseModel):
    """One problem found in a settings payload."""
    key: str
    message: str


class PluginResponse(BaseModel):
    """Envelope returned to the host for every stage-status request."""
    status: Literal["success", "failure"]
    messages: list[str] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    environment: str
