"""Configuration system for push-dispatch.

This module implements the configuration schema using Pydantic for
validation, with support for environment variable resolution and fail-fast
validation with actionable error messages.
"""

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Final, Literal, Self

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from push_dispatch.core.validation import DEFAULT_MAX_TOKEN_LENGTH

# ${NAME} references; names are upper-case letters, digits and underscores
ENV_VAR_PATTERN: Final[re.Pattern[str]] = re.compile(r"\$\{([A-Z0-9_]+)\}")

DEFAULT_GATEWAY_BASE_URL: Final[str] = "https://fcm.googleapis.com"


class GatewayConfig(BaseModel):
    """Configuration for the messaging gateway endpoint."""

    project_id: Annotated[
        str,
        Field(
            min_length=1,
            pattern=r"^[a-z0-9][a-z0-9\-]*$",
            description="Cloud project that owns the messaging sender",
        ),
    ]
    base_url: Annotated[
        str,
        Field(
            pattern=r"^https?://",
            description="Gateway base URL",
        ),
    ] = DEFAULT_GATEWAY_BASE_URL
    validate_only: Annotated[
        bool,
        Field(
            description="Ask the gateway to validate messages without delivering them",
        ),
    ] = False


class DispatchConfig(BaseModel):
    """Configuration for batch dispatch behavior.

    Defines the worker pool size, per-request timeout, recipient token limits
    and default delivery metadata.
    """

    concurrency: Annotated[
        int,
        Field(
            ge=1,
            le=1000,
            description="Maximum number of envelopes in flight at once",
        ),
    ] = 10
    gateway_timeout_seconds: Annotated[
        float,
        Field(
            gt=0,
            le=300,
            description="Timeout for each gateway request in seconds",
        ),
    ] = 10.0
    max_token_length: Annotated[
        int,
        Field(
            gt=0,
            description="Maximum recipient token size in bytes",
        ),
    ] = DEFAULT_MAX_TOKEN_LENGTH
    batch_timeout_seconds: Annotated[
        float | None,
        Field(
            gt=0,
            description="Stop starting new sends after this many seconds",
        ),
    ] = None
    default_priority: Annotated[
        Literal["normal", "high"],
        Field(
            description="Priority applied when the caller supplies no delivery options",
        ),
    ] = "normal"
    default_ttl_seconds: Annotated[
        int | None,
        Field(
            ge=0,
            le=2_419_200,
            description="Time-to-live applied when the caller supplies no delivery options",
        ),
    ] = None


class RetryConfig(BaseModel):
    """Configuration for transient failure retries."""

    max_retries: Annotated[
        int,
        Field(
            ge=0,
            le=10,
            description="Retries after the first attempt for transient failures",
        ),
    ] = 3
    base_delay_seconds: Annotated[
        float,
        Field(
            gt=0,
            description="Delay before the first retry",
        ),
    ] = 0.5
    backoff_factor: Annotated[
        float,
        Field(
            ge=1.0,
            le=10.0,
            description="Multiplier applied to the delay after each retry",
        ),
    ] = 2.0
    max_delay_seconds: Annotated[
        float,
        Field(
            gt=0,
            description="Upper bound for computed backoff delays",
        ),
    ] = 4.0
    jitter_percent: Annotated[
        float,
        Field(
            ge=0,
            le=50,
            description="Random jitter applied to backoff delays, in percent",
        ),
    ] = 0.0
    max_retry_after_seconds: Annotated[
        float,
        Field(
            gt=0,
            description="Upper bound for gateway-supplied retry-after hints",
        ),
    ] = 60.0

    @model_validator(mode="after")
    def validate_delay_bounds(self) -> Self:
        """Ensure the delay cap is not below the base delay."""
        if self.max_delay_seconds < self.base_delay_seconds:
            msg = "max_delay_seconds must be greater than or equal to base_delay_seconds"
            raise ValueError(msg)
        return self


class CredentialsConfig(BaseModel):
    """Configuration for the static credential provider."""

    access_token: Annotated[
        str | None,
        Field(
            min_length=1,
            description="Bearer token for the gateway (use ${ENV_VAR} syntax)",
        ),
    ] = None
    expiry_margin_seconds: Annotated[
        float,
        Field(
            ge=0,
            description="Refresh credentials this many seconds before they expire",
        ),
    ] = 60.0
    fetch_timeout_seconds: Annotated[
        float,
        Field(
            gt=0,
            le=300,
            description="Give up on the credential provider after this many seconds",
        ),
    ] = 30.0


class ApplicationConfig(BaseModel):
    """Configuration for application-level settings.

    Defines operational behavior including logging level, dry-run mode
    and syslog integration.
    """

    log_level: Annotated[
        str,
        Field(
            description="Logging level",
            pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        ),
    ] = "INFO"
    dry_run: Annotated[
        bool,
        Field(
            description="Dry-run mode: log messages without contacting the gateway",
        ),
    ] = False
    syslog_enabled: Annotated[
        bool,
        Field(
            description="Enable syslog integration",
        ),
    ] = False


class MainConfig(BaseModel):
    """Main application configuration schema.

    Top-level configuration container aggregating all configuration sections:
    - gateway: Messaging gateway endpoint
    - dispatch: Worker pool, timeouts and token limits
    - retry: Backoff schedule for transient failures
    - credentials: Static bearer token settings
    - application: Application-level settings
    """

    gateway: Annotated[
        GatewayConfig,
        Field(
            description="Messaging gateway configuration",
        ),
    ]
    dispatch: Annotated[
        DispatchConfig,
        Field(
            description="Batch dispatch configuration",
        ),
    ] = DispatchConfig()
    retry: Annotated[
        RetryConfig,
        Field(
            description="Retry configuration",
        ),
    ] = RetryConfig()
    credentials: Annotated[
        CredentialsConfig,
        Field(
            description="Credential configuration",
        ),
    ] = CredentialsConfig()
    application: Annotated[
        ApplicationConfig,
        Field(
            description="Application-level configuration",
        ),
    ] = ApplicationConfig()


class EnvironmentVariableError(Exception):
    """Raised when a ``${VAR}`` reference names an unset environment variable.

    The message names the variable, never its value.
    """


def resolve_env_var(value: str) -> str:
    """Substitute every ``${VAR}`` reference in a string.

    Raises:
        EnvironmentVariableError: If a referenced variable is not set

    Examples:
        >>> os.environ["PUSH_DISPATCH_PROJECT"] = "demo-project"
        >>> resolve_env_var("projects/${PUSH_DISPATCH_PROJECT}")
        'projects/demo-project'
    """

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in os.environ:
            msg = f"Required environment variable '{name}' is not set. Export it before running push-dispatch."
            raise EnvironmentVariableError(msg)
        return os.environ[name]

    return ENV_VAR_PATTERN.sub(substitute, value)


def _resolve_value(value: object) -> object:
    # YAML data is untyped at load time; pydantic validates after resolution
    if isinstance(value, str):
        return resolve_env_var(value)
    if isinstance(value, dict):
        return resolve_env_vars_in_dict(value)  # pyright: ignore[reportUnknownArgumentType]  # YAML boundary
    if isinstance(value, list):
        return [_resolve_value(item) for item in value]  # pyright: ignore[reportUnknownVariableType]  # YAML boundary
    return value


def resolve_env_vars_in_dict(data: Mapping[str, object]) -> dict[str, object]:
    """Return a copy of ``data`` with ``${VAR}`` references resolved at any depth.

    Raises:
        EnvironmentVariableError: If a referenced variable is not set
    """
    return {key: _resolve_value(value) for key, value in data.items()}


class ConfigurationError(Exception):
    """Raised when a configuration or batch file cannot be loaded or validated.

    Messages name the file and, for schema errors, every offending field.
    """


def load_yaml_document(path: Path, *, description: str = "configuration") -> object:
    """Load a YAML (or JSON) document without constraining its root type.

    Args:
        path: File to load
        description: Human-readable name used in error messages

    Returns:
        Parsed document

    Raises:
        ConfigurationError: If the file is missing, unreadable or malformed
    """
    if not path.exists():
        msg = (
            f"{description.capitalize()} file not found: {path}\n"
            f"Please create a {description} file at this location."
        )
        raise ConfigurationError(msg)

    try:
        with path.open("r", encoding="utf-8") as f:
            raw_data: object = yaml.safe_load(f)  # pyright: ignore[reportAny]  # YAML boundary
    except yaml.YAMLError as e:
        msg = (
            f"Failed to parse YAML {description} file: {path}\n"
            f"YAML parsing error: {e}\n"
            f"Please check the file for syntax errors."
        )
        raise ConfigurationError(msg) from e
    except OSError as e:
        msg = f"Failed to read {description} file: {path}\nError: {e}\nPlease check file permissions."
        raise ConfigurationError(msg) from e

    return raw_data


def load_yaml_mapping(path: Path, *, description: str = "configuration") -> dict[str, object]:
    """Load a YAML file whose root must be a mapping.

    Raises:
        ConfigurationError: If the file is missing, unreadable, malformed,
            or its root is not a mapping
    """
    raw_data = load_yaml_document(path, description=description)

    if not isinstance(raw_data, dict):
        msg = (
            f"Invalid {description} file format: {path}\n"
            f"Expected YAML dictionary at root level, got: {type(raw_data).__name__}\n"
            f"The file must contain key-value pairs."
        )
        raise ConfigurationError(msg)

    return raw_data  # pyright: ignore[reportUnknownVariableType]  # YAML boundary


def load_main_config(config_path: Path) -> MainConfig:
    """Read, resolve and validate the push-dispatch configuration file.

    Environment references are resolved before schema validation, so a
    missing secret is reported before anything is sent.

    Args:
        config_path: Path to main configuration YAML file

    Returns:
        Validated MainConfig instance

    Raises:
        ConfigurationError: If configuration file cannot be loaded or is invalid

    Examples:
        >>> config = load_main_config(Path("config/push-dispatch.yaml"))
        >>> print(config.dispatch.concurrency)
        10
    """
    raw_data = load_yaml_mapping(config_path)

    try:
        resolved_data = resolve_env_vars_in_dict(raw_data)
    except EnvironmentVariableError as e:
        msg = (
            f"Environment variable resolution failed in: {config_path}\n"
            f"{e}\n"
            f"Set the required environment variable before starting the application."
        )
        raise ConfigurationError(msg) from e

    try:
        config = MainConfig.model_validate(resolved_data)
    except ValidationError as e:
        error_lines = ["Configuration validation failed:", ""]
        for error in e.errors():
            field_path = " → ".join(str(loc) for loc in error["loc"])
            error_lines.append(f"  Field: {field_path}")
            error_lines.append(f"  Error: {error['msg']}")
            error_lines.append(f"  Type: {error['type']}")
            error_lines.append("")

        error_lines.append(f"Configuration file: {config_path}")
        error_lines.append("Please fix the above errors and try again.")

        msg = "\n".join(error_lines)
        raise ConfigurationError(msg) from e

    return config
