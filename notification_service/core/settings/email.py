"""Email transport settings: SMTP endpoints, pooling, throttling and templates.

Environment variables use EMAIL_ prefix.
Example: EMAIL_SMTP_HOST=smtp.example.com, EMAIL_FAILOVER_HOST=smtp-backup.example.com
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import EmailStr, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TEMPLATE_MAPPING: dict[str, str] = {
    "TASK_ASSIGNED": "task_assigned",
    "TASK_UPDATED": "task_updated",
    "TASK_COMPLETED": "task_completed",
    "PROJECT_CREATED": "project_created",
    "PROJECT_UPDATED": "project_updated",
    "COMMENT_ADDED": "comment_added",
    "MENTION": "mention",
    "SYSTEM": "system",
}

DEFAULT_HEADERS: dict[str, str] = {
    "X-Mailer": "TaskManagementSystem",
    "X-Content-Type-Options": "nosniff",
}


@dataclass(frozen=True)
class SMTPEndpoint:
    """Connection parameters for one SMTP relay."""

    name: str
    host: str
    port: int
    username: str | None = None
    password: str | None = None
    use_tls: bool = True
    use_ssl: bool = False
    validate_certs: bool = True
    timeout: float = 30.0

    @property
    def requires_auth(self) -> bool:
        return bool(self.username and self.password)

    def url(self) -> str:
        """SMTP URL for logs (never includes the password)."""
        scheme = "smtps" if self.use_ssl else "smtp"
        auth = f"{self.username}@" if self.username else ""
        return f"{scheme}://{auth}{self.host}:{self.port}"


class EmailSettings(BaseSettings):
    """Email transport configuration.

    The primary endpoint is served through a bounded connection pool; the
    failover endpoint is only used after the primary exhausted its retries.
    """

    # Primary SMTP endpoint
    smtp_host: str = Field(
        default="localhost",
        min_length=1,
        max_length=255,
        description="Primary SMTP server hostname",
    )
    smtp_port: int = Field(
        default=587,
        ge=1,
        le=65535,
        description="Primary SMTP port (587 for TLS, 465 for SSL, 25 for plain)",
    )
    smtp_username: str | None = Field(default=None, max_length=255)
    smtp_password: SecretStr | None = Field(default=None)
    use_tls: bool = Field(
        default=True,
        description="Use STARTTLS on the primary endpoint",
    )
    use_ssl: bool = Field(
        default=False,
        description="Use implicit SSL/TLS on the primary endpoint. Mutually exclusive with use_tls",
    )
    validate_certs: bool = Field(
        default=True,
        description="Validate SSL/TLS certificates",
    )

    # Failover SMTP endpoint
    failover_enabled: bool = Field(
        default=False,
        description="Send through the secondary endpoint once the primary exhausted its retries",
    )
    failover_host: str | None = Field(default=None, max_length=255)
    failover_port: int = Field(default=465, ge=1, le=65535)
    failover_username: str | None = Field(default=None, max_length=255)
    failover_password: SecretStr | None = Field(default=None)
    failover_use_ssl: bool = Field(default=True)

    # Connection pool
    pool_max_connections: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Maximum concurrent SMTP connections per endpoint",
    )
    pool_max_messages: int = Field(
        default=100,
        ge=1,
        le=10_000,
        description="Messages sent over one connection before it is recycled",
    )

    # Global send ceiling (protects the relay, independent of per-recipient limits)
    max_per_second: float = Field(
        default=10.0,
        gt=0,
        le=10_000,
        description="Sustained outbound messages per second",
    )
    max_burst: int = Field(
        default=50,
        ge=1,
        le=100_000,
        description="Burst capacity of the send token bucket",
    )

    timeout: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="SMTP connection/command timeout in seconds",
    )

    # Sender
    from_email: EmailStr = Field(default="noreply@example.com")
    from_name: str = Field(default="Task Management System", max_length=100)
    reply_to: EmailStr | None = Field(default=None)
    default_headers: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_HEADERS))

    # Templates
    template_dir: str = Field(
        default="templates/email",
        description="Directory containing email templates (relative to package root)",
    )
    template_extension: str = Field(default=".html")
    template_mapping: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_TEMPLATE_MAPPING),
        description="Notification type -> template name",
    )

    @model_validator(mode="after")
    def validate_tls_ssl_exclusive(self) -> EmailSettings:
        """Ensure TLS and SSL are mutually exclusive."""
        if self.use_tls and self.use_ssl:
            msg = "use_tls and use_ssl are mutually exclusive"
            raise ValueError(msg)
        return self

    @model_validator(mode="after")
    def validate_smtp_auth(self) -> EmailSettings:
        """Username and password travel together."""
        if (self.smtp_username is None) != (self.smtp_password is None):
            msg = "Both smtp_username and smtp_password must be provided together"
            raise ValueError(msg)
        if (self.failover_username is None) != (self.failover_password is None):
            msg = "Both failover_username and failover_password must be provided together"
            raise ValueError(msg)
        return self

    @model_validator(mode="after")
    def validate_failover(self) -> EmailSettings:
        if self.failover_enabled and not self.failover_host:
            msg = "failover_host is required when failover_enabled is true"
            raise ValueError(msg)
        return self

    model_config = SettingsConfigDict(
        env_prefix="EMAIL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @property
    def primary_endpoint(self) -> SMTPEndpoint:
        return SMTPEndpoint(
            name="primary",
            host=self.smtp_host,
            port=self.smtp_port,
            username=self.smtp_username,
            password=self.smtp_password.get_secret_value() if self.smtp_password else None,
            use_tls=self.use_tls,
            use_ssl=self.use_ssl,
            validate_certs=self.validate_certs,
            timeout=self.timeout,
        )

    @property
    def failover_endpoint(self) -> SMTPEndpoint | None:
        if not self.failover_enabled or not self.failover_host:
            return None
        return SMTPEndpoint(
            name="failover",
            host=self.failover_host,
            port=self.failover_port,
            username=self.failover_username,
            password=self.failover_password.get_secret_value() if self.failover_password else None,
            use_tls=not self.failover_use_ssl,
            use_ssl=self.failover_use_ssl,
            validate_certs=self.validate_certs,
            timeout=self.timeout,
        )
