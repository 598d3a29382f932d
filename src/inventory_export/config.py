"""Export configuration from YAML file and environment.

Loads from a single YAML file (default: ./config.yaml or $INVENTORY_EXPORT_CONFIG)
with every setting in one place, then fills gaps from environment variables.
Environment variables are also supported inside the YAML using ${VAR_NAME}
and ${VAR_NAME:-default} syntax.

Unit list precedence, per kind (tenants, subscriptions):
    1. The list in the config file
    2. TENANT_IDS / SUBSCRIPTION_IDS (comma separated)
    3. TENANT_ID + ADDITIONAL_TENANT_IDS / SUBSCRIPTION_ID + ADDITIONAL_SUBSCRIPTION_IDS

Everything is validated once at startup; invalid configuration raises a
fatal ConfigurationError naming the offending field.
"""

import logging
import os
import re
import uuid
from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Optional

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_pascal

from core.errors.exceptions import ConfigurationError
from core.resilience.retry import RetryConfig

logger = logging.getLogger(__name__)

KIB = 1024
DEFAULT_CONFIG_FILE = Path("config.yaml")
CONFIG_PATH_ENV = "INVENTORY_EXPORT_CONFIG"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class UnitKind(str, Enum):
    TENANT = "tenant"
    SUBSCRIPTION = "subscription"


def load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file and return dict."""
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any, environ: Mapping[str, str]) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value, environ) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item, environ) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return environ.get(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _split_ids(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in re.split(r"[,;\s]+", value) if part.strip()]


class _PascalModel(BaseModel):
    """Accepts snake_case names and the PascalCase names of legacy config files."""

    model_config = ConfigDict(
        alias_generator=to_pascal,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class ExportConfiguration(_PascalModel):
    """Which entity types to export for subscriptions, plus optional filters."""

    subscription_objects: bool = True
    role_definitions: bool = True
    resource_group_details: bool = True
    role_assignments: bool = True
    policy_definitions: bool = True
    policy_assignments: bool = True
    policy_exemptions: bool = True
    security_center_subscriptions: bool = True
    include_child_resources: bool = False
    resource_groups: tuple[str, ...] = ()
    resource_types: tuple[str, ...] = ()

    TOGGLES: ClassVar[tuple[str, ...]] = (
        "subscription_objects",
        "role_definitions",
        "resource_group_details",
        "role_assignments",
        "policy_definitions",
        "policy_assignments",
        "policy_exemptions",
        "security_center_subscriptions",
        "include_child_resources",
    )

    @field_validator("resource_groups", "resource_types", mode="before")
    @classmethod
    def normalize_filter(cls, v: Any) -> tuple[str, ...]:
        if v is None:
            return ()
        if isinstance(v, str):
            v = _split_ids(v)
        return tuple(str(item).strip().lower() for item in v if str(item).strip())

    def allows_resource_group(self, name: Optional[str]) -> bool:
        if not self.resource_groups:
            return True
        return bool(name) and name.lower() in self.resource_groups

    def allows_resource_type(self, resource_type: Optional[str]) -> bool:
        if not self.resource_types:
            return True
        return bool(resource_type) and resource_type.lower() in self.resource_types

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> "ExportConfiguration":
        """Build from EXPORT_<TOGGLE> variables; unset toggles keep their defaults."""
        values: dict[str, Any] = {}
        for toggle in cls.TOGGLES:
            raw = environ.get(f"EXPORT_{toggle.upper()}")
            if raw is not None and raw != "":
                try:
                    values[toggle] = parse_bool(raw)
                except ValueError as e:
                    raise ConfigurationError(
                        f"Invalid EXPORT_{toggle.upper()}: {e}",
                        context={"field": f"EXPORT_{toggle.upper()}"},
                    ) from e
        if environ.get("EXPORT_RESOURCE_GROUPS"):
            values["resource_groups"] = environ["EXPORT_RESOURCE_GROUPS"]
        if environ.get("EXPORT_RESOURCE_TYPES"):
            values["resource_types"] = environ["EXPORT_RESOURCE_TYPES"]
        return cls(**values)


class UnitDescriptor(_PascalModel):
    """One tenant or subscription to export."""

    id: str
    name: str = ""
    description: str = ""
    enabled: bool = True
    priority: int = 100

    @field_validator("id", mode="before")
    @classmethod
    def validate_guid(cls, v: Any) -> str:
        try:
            return str(uuid.UUID(str(v).strip()))
        except (ValueError, AttributeError) as e:
            raise ValueError(f"id must be a GUID, got {v!r}") from e

    @property
    def display_name(self) -> str:
        return self.name or self.id


class BatchingConfig(_PascalModel):
    """Batch size limits. Defaults fit the 256 KB Event Hubs tier."""

    target_bytes: int = Field(default=220 * KIB, gt=0)
    hard_cap_bytes: int = Field(default=230 * KIB, gt=0)
    single_item_threshold_bytes: int = Field(default=150 * KIB, gt=0)

    @model_validator(mode="after")
    def check_ordering(self) -> "BatchingConfig":
        if not (self.single_item_threshold_bytes <= self.target_bytes <= self.hard_cap_bytes):
            raise ValueError(
                "batching requires single_item_threshold_bytes <= target_bytes <= hard_cap_bytes"
            )
        return self


class SinkConfig(_PascalModel):
    """Event Hubs destination."""

    namespace: str = ""
    hub_name: str = ""
    endpoint: Optional[str] = None
    timeout_seconds: float = Field(default=60.0, gt=0)

    @property
    def is_configured(self) -> bool:
        return bool(self.endpoint) or bool(self.namespace and self.hub_name)

    @property
    def host(self) -> str:
        # Accept both "myns" and "myns.servicebus.windows.net"
        if "." in self.namespace:
            return self.namespace
        return f"{self.namespace}.servicebus.windows.net"

    @property
    def messages_url(self) -> str:
        if self.endpoint:
            return self.endpoint
        return f"https://{self.host}/{self.hub_name}/messages"


class SourceConfig(_PascalModel):
    graph_endpoint: str = "https://graph.microsoft.com/v1.0"
    management_endpoint: str = "https://management.azure.com"
    page_size: int = Field(default=999, gt=0, le=999)
    timeout_seconds: float = Field(default=120.0, gt=0)

    @field_validator("graph_endpoint", "management_endpoint")
    @classmethod
    def strip_slash(cls, v: str) -> str:
        return v.rstrip("/")


class RetrySettings(_PascalModel):
    max_attempts: int = Field(default=3, ge=1)
    auth_max_attempts: int = Field(default=2, ge=1)
    initial_delay_seconds: float = Field(default=2.0, ge=0)
    max_delay_seconds: float = Field(default=60.0, ge=0)

    def to_retry_config(self, max_attempts: Optional[int] = None) -> RetryConfig:
        return RetryConfig(
            max_attempts=max_attempts or self.max_attempts,
            base_delay=self.initial_delay_seconds,
            max_delay=self.max_delay_seconds,
        )


class FanOutSettings(_PascalModel):
    """Jittered pause between fan-out parents."""

    min_delay_seconds: float = Field(default=1.0, ge=0)
    max_delay_seconds: float = Field(default=2.0, ge=0)

    @model_validator(mode="after")
    def check_range(self) -> "FanOutSettings":
        if self.min_delay_seconds > self.max_delay_seconds:
            raise ValueError("fan_out.min_delay_seconds must be <= max_delay_seconds")
        return self


class AppConfig(_PascalModel):
    """Complete, validated configuration for one run."""

    identity_client_id: Optional[str] = None
    tenants: tuple[UnitDescriptor, ...] = ()
    subscriptions: tuple[UnitDescriptor, ...] = ()
    export: ExportConfiguration = Field(default_factory=ExportConfiguration)
    batching: BatchingConfig = Field(default_factory=BatchingConfig)
    sink: SinkConfig = Field(default_factory=SinkConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    fan_out: FanOutSettings = Field(default_factory=FanOutSettings)
    progress_interval: int = Field(default=500, gt=0)
    state_file: Optional[Path] = None

    def units(self, kind: UnitKind) -> tuple[UnitDescriptor, ...]:
        return self.tenants if kind == UnitKind.TENANT else self.subscriptions

    def active_units(self, kind: UnitKind) -> list[UnitDescriptor]:
        """Enabled units of one kind, lowest priority value first."""
        # sorted() is stable, so equal priorities keep file order
        return sorted(
            (u for u in self.units(kind) if u.enabled),
            key=lambda u: u.priority,
        )


def _units_from_env(
    environ: Mapping[str, str],
    list_var: str,
    primary_var: str,
    additional_var: str,
) -> tuple[list[dict[str, Any]], Optional[str]]:
    """Unit list from environment, with the variable it came from."""
    ids = _split_ids(environ.get(list_var))
    source = list_var
    if not ids:
        primary = _split_ids(environ.get(primary_var))
        ids = primary[:1] + _split_ids(environ.get(additional_var))
        source = primary_var if ids else None

    seen: set[str] = set()
    units = []
    for unit_id in ids:
        key = unit_id.lower()
        if key in seen:
            continue
        seen.add(key)
        units.append({"id": unit_id, "priority": len(units) + 1})
    return units, source


def _format_validation_error(error: ValidationError) -> tuple[str, str]:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "config"
    return location, first.get("msg", str(error))


def resolve_config_path(path: Optional[str | Path], environ: Mapping[str, str]) -> Optional[Path]:
    if path:
        resolved = Path(path)
        if not resolved.exists():
            raise ConfigurationError(
                f"Config file not found: {resolved}", context={"field": "config"}
            )
        return resolved
    env_path = environ.get(CONFIG_PATH_ENV)
    if env_path:
        return resolve_config_path(env_path, {})
    if DEFAULT_CONFIG_FILE.exists():
        return DEFAULT_CONFIG_FILE
    return None


def load_config(
    path: Optional[str | Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AppConfig:
    """
    Load and validate configuration.

    Args:
        path: YAML config file. When None, $INVENTORY_EXPORT_CONFIG or
            ./config.yaml is used if present; otherwise environment only.
        environ: Environment mapping (default: os.environ)

    Returns:
        Validated AppConfig

    Raises:
        ConfigurationError: File missing, unreadable YAML, or invalid values
    """
    environ = os.environ if environ is None else environ
    config_path = resolve_config_path(path, environ)

    data: dict[str, Any] = {}
    if config_path is not None:
        try:
            data = _expand_env_vars(load_yaml(config_path), environ)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in {config_path}: {e}", cause=e, context={"field": "config"}
            ) from e
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Config file {config_path} must contain a mapping at top level",
                context={"field": "config"},
            )
        data = dict(data.get("inventory_export", data))

    sources: dict[str, str] = {}
    for kind, keys, env_names in (
        ("tenants", ("tenants", "Tenants"), ("TENANT_IDS", "TENANT_ID", "ADDITIONAL_TENANT_IDS")),
        (
            "subscriptions",
            ("subscriptions", "Subscriptions"),
            ("SUBSCRIPTION_IDS", "SUBSCRIPTION_ID", "ADDITIONAL_SUBSCRIPTION_IDS"),
        ),
    ):
        file_units = next((data.pop(k) for k in keys if data.get(k)), None)
        for k in keys:
            data.pop(k, None)
        if file_units:
            data[kind] = file_units
            sources[kind] = "file"
        else:
            env_units, source = _units_from_env(environ, *env_names)
            data[kind] = env_units
            if source:
                sources[kind] = source

    if not any(k in data for k in ("export", "Export")):
        data["export"] = ExportConfiguration.from_env(environ)

    sink = dict(data.pop("sink", None) or data.pop("Sink", None) or {})
    if not sink.get("namespace") and not sink.get("Namespace"):
        sink["namespace"] = environ.get("EVENTHUB_NAMESPACE", "")
    if not sink.get("hub_name") and not sink.get("HubName"):
        sink["hub_name"] = environ.get("EVENTHUB_NAME", "")
    data["sink"] = sink

    if not data.get("identity_client_id") and environ.get("AZURE_CLIENT_ID"):
        data["identity_client_id"] = environ["AZURE_CLIENT_ID"]

    try:
        config = AppConfig.model_validate(data)
    except ValidationError as e:
        location, msg = _format_validation_error(e)
        raise ConfigurationError(
            f"Invalid configuration at '{location}': {msg}",
            cause=e,
            context={"field": location},
        ) from e

    logger.debug(
        "Configuration loaded",
        extra={
            "target": str(config_path) if config_path else "environment",
            "units_total": len(config.tenants) + len(config.subscriptions),
        },
    )
    for kind, source in sources.items():
        logger.debug("Units for %s loaded from %s", kind, source)

    return config


__all__ = [
    "UnitKind",
    "ExportConfiguration",
    "UnitDescriptor",
    "BatchingConfig",
    "SinkConfig",
    "SourceConfig",
    "RetrySettings",
    "FanOutSettings",
    "AppConfig",
    "load_config",
    "load_yaml",
    "parse_bool",
]
