"""Configuration for the SharePoint List Sync service.

Two layers:

    Settings         process settings from environment variables (and an
                     optional .env file loaded with python-dotenv)
    ResourcesConfig  the tracked lists, from a YAML file validated with
                     pydantic

Neither is a global: main.py loads both once and passes them to every
component that needs them.

Example config.yaml:

    sharepoint:
      lists:
        - site_id: "contoso.sharepoint.com,1111,2222"
          list_id: "8f2c..."
          table_name: "sp_tasks"
          columns:
            title: Title
            status: Status
"""

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Self
from urllib.parse import quote

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .api.exceptions import ConfigurationError
from .sync.domain.entities import (
    ITEM_METADATA_COLUMNS,
    ColumnMapping,
    ListSchema,
    ResourceRef,
    TrackedList,
)
from .sync.use_cases.ensure_subscriptions import MAX_SUBSCRIPTION_EXPIRY, SubscriptionSettings

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# ============================================
# Process settings
# ============================================


def parse_log_level(value: str) -> int:
    """Map a LOG_LEVEL string to a logging level.

    Raises:
        ConfigurationError: If the level is unknown
    """
    level = LOG_LEVELS.get(value.strip().upper())
    if level is None:
        raise ConfigurationError(
            f"Invalid LOG_LEVEL '{value}', expected one of {', '.join(LOG_LEVELS)}"
        )
    return level


def _int_env(env: dict[str, str], key: str, default: Optional[int]) -> Optional[int]:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got '{raw}'")


@dataclass(frozen=True)
class Settings:
    """Process settings read from the environment."""

    tenant_id: str
    client_id: str
    client_secret: str
    database_url: str
    external_base_url: str
    app_scopes: str = "https://graph.microsoft.com/.default"
    graph_base_url: str = "https://graph.microsoft.com/v1.0"
    listen_ip: str = "0.0.0.0"
    listen_port: int = 8080
    log_level: int = logging.INFO
    subscription_expiry_minutes: int = 2880
    subscription_renewal_minutes: int = 4320
    items_page_cap: Optional[int] = None
    resources_config: str = "config.yaml"

    @classmethod
    def from_env(cls, env: Optional[dict[str, str]] = None) -> "Settings":
        """Build settings from environment variables.

        Args:
            env: Mapping to read instead of os.environ (loads .env when omitted)

        Raises:
            ConfigurationError: Listing every missing required key, or
                describing the first invalid value
        """
        if env is None:
            load_dotenv()
            env = dict(os.environ)

        missing = [
            key
            for key in (
                "GRAPH_TENANT_ID",
                "GRAPH_CLIENT_ID",
                "GRAPH_CLIENT_SECRET",
                "WEBHOOK_EXTERNAL_BASE_URL",
            )
            if not env.get(key)
        ]

        database_url = env.get("DATABASE_URL") or ""
        if not database_url:
            db_keys = ("DB_HOST", "DB_PORT", "DB_USER", "DB_PASSWORD", "DB_NAME")
            db_missing = [key for key in db_keys if not env.get(key)]
            if db_missing:
                missing.extend(db_missing)
            else:
                database_url = (
                    f"postgresql://{quote(env['DB_USER'], safe='')}:{quote(env['DB_PASSWORD'], safe='')}"
                    f"@{env['DB_HOST']}:{env['DB_PORT']}/{env['DB_NAME']}"
                )

        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}",
                missing_keys=missing,
            )

        page_cap = _int_env(env, "ITEMS_PAGE_CAP", None)
        if page_cap is not None and page_cap <= 0:
            raise ConfigurationError(f"ITEMS_PAGE_CAP must be positive, got {page_cap}")

        return cls(
            tenant_id=env["GRAPH_TENANT_ID"],
            client_id=env["GRAPH_CLIENT_ID"],
            client_secret=env["GRAPH_CLIENT_SECRET"],
            database_url=database_url,
            external_base_url=env["WEBHOOK_EXTERNAL_BASE_URL"].rstrip("/"),
            app_scopes=env.get("GRAPH_APP_SCOPES") or cls.app_scopes,
            graph_base_url=env.get("GRAPH_BASE_URL") or cls.graph_base_url,
            listen_ip=env.get("WEBHOOK_LISTEN_IP") or cls.listen_ip,
            listen_port=_int_env(env, "WEBHOOK_LISTEN_PORT", cls.listen_port),
            log_level=parse_log_level(env.get("LOG_LEVEL") or "INFO"),
            subscription_expiry_minutes=_int_env(
                env, "SUBSCRIPTION_EXPIRY_MINUTES", cls.subscription_expiry_minutes
            ),
            subscription_renewal_minutes=_int_env(
                env, "SUBSCRIPTION_RENEWAL_MINUTES", cls.subscription_renewal_minutes
            ),
            items_page_cap=page_cap,
            resources_config=env.get("RESOURCES_CONFIG") or cls.resources_config,
        )

    def subscription_settings(self) -> SubscriptionSettings:
        """Subscription settings (validates the expiry bounds)."""
        return SubscriptionSettings(
            external_base_url=self.external_base_url,
            expiry_minutes=self.subscription_expiry_minutes,
            renewal_minutes=self.subscription_renewal_minutes,
        )

    def __repr__(self) -> str:
        return (
            f"Settings(tenant_id={self.tenant_id!r}, client_id={self.client_id!r}, "
            f"external_base_url={self.external_base_url!r}, "
            f"listen={self.listen_ip}:{self.listen_port})"
        )


# ============================================
# Tracked resources
# ============================================


class BaseYamlModel(BaseModel):
    """Pydantic model that can be loaded from a .yaml file."""

    @classmethod
    def load_yaml(cls, file: Path | str) -> Self:
        """Load and validate the model from a .yaml file.

        Raises:
            ConfigurationError: If the file is missing, unreadable or invalid
        """
        path = Path(file)
        if not path.is_file():
            raise ConfigurationError(f"Resources config not found: {path}")

        try:
            with path.open() as fh:
                model = yaml.safe_load(fh)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}", cause=e)

        if not isinstance(model, dict):
            raise ConfigurationError(f"Invalid yaml contents in {path}: {model!r}")

        try:
            return cls.model_validate(model)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid resources config {path}: {e}", cause=e)


class ListConfig(BaseModel):
    """One tracked SharePoint list."""

    site_id: str = Field(min_length=1)
    list_id: str = Field(min_length=1)
    table_name: str
    columns: dict[str, str] = Field(
        description="Ordered mapping of database column -> SharePoint field name",
    )

    @field_validator("table_name")
    @classmethod
    def check_table_name(cls, value: str) -> str:
        parts = value.split(".")
        if len(parts) > 2 or not all(_IDENTIFIER.match(p) for p in parts):
            raise ValueError(f"'{value}' is not a valid table name")
        return value

    @field_validator("columns")
    @classmethod
    def check_columns(cls, value: dict[str, str]) -> dict[str, str]:
        if not value:
            raise ValueError("at least one column is required")
        for column, field in value.items():
            if not _IDENTIFIER.match(column):
                raise ValueError(f"'{column}' is not a valid column name")
            if column.lower() in ITEM_METADATA_COLUMNS:
                raise ValueError(f"column '{column}' is reserved for item metadata")
            if not field:
                raise ValueError(f"column '{column}' has no field name")
        return value

    def to_tracked(self) -> TrackedList:
        return TrackedList(
            ref=ResourceRef(site_id=self.site_id, list_id=self.list_id),
            schema=ListSchema(
                table_name=self.table_name,
                columns=tuple(ColumnMapping(column=c, field=f) for c, f in self.columns.items()),
            ),
        )


class SharepointConfig(BaseModel):
    lists: list[ListConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_unique(self) -> Self:
        seen: set[tuple[str, str]] = set()
        tables: dict[str, str] = {}
        for entry in self.lists:
            key = (entry.site_id, entry.list_id)
            if key in seen:
                raise ValueError(
                    f"list {entry.list_id} of site {entry.site_id} is configured twice"
                )
            seen.add(key)
            # Item ids are only unique within one list
            if entry.table_name in tables:
                raise ValueError(
                    f"table '{entry.table_name}' is used by list {tables[entry.table_name]} "
                    f"and list {entry.list_id}"
                )
            tables[entry.table_name] = entry.list_id
        return self


class ResourcesConfig(BaseYamlModel):
    """Root of the resources YAML file."""

    sharepoint: SharepointConfig = Field(default_factory=SharepointConfig)

    def tracked_lists(self) -> list[TrackedList]:
        return [entry.to_tracked() for entry in self.sharepoint.lists]


__all__ = [
    "LOG_LEVELS",
    "MAX_SUBSCRIPTION_EXPIRY",
    "BaseYamlModel",
    "ListConfig",
    "ResourcesConfig",
    "Settings",
    "SharepointConfig",
    "parse_log_level",
]
