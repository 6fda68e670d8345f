"""Configuration management for the status dashboard."""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from status_board.models import SERVICE_KINDS, ServiceCategory, ServiceDescriptor, flatten_categories


DEFAULT_CONFIG_PATH = Path(__file__).with_name("config.yaml")


class ServiceConfig(BaseModel):
    """A single monitored service as written in the YAML catalog."""
    name: str = Field(description="Display name, unique across the catalog")
    url: str = Field(description="Service URL; only its origin is probed")
    description: str = Field(default="", description="Short human-readable description")
    kind: str = Field(default="website", description="Display hint: website, api or database")

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        value = str(value or "").strip()
        if not value:
            raise ValueError("service name is required")
        return value

    @field_validator("kind")
    @classmethod
    def _known_kind(cls, value: str) -> str:
        value = str(value or "").strip().lower() or "website"
        if value not in SERVICE_KINDS:
            raise ValueError(f"unknown service kind {value!r}; expected one of {', '.join(SERVICE_KINDS)}")
        return value


class CategoryConfig(BaseModel):
    """Named group of services, shown together on the dashboard."""
    name: str = Field(description="Category title")
    services: list[ServiceConfig] = Field(default_factory=list)


class DashboardConfig(BaseModel):
    """Main configuration for the status dashboard."""

    log_level: str = Field(default="INFO", description="Logging level")

    # Probe settings
    probe_timeout_ms: int = Field(default=10_000, gt=0, description="Per-probe deadline in milliseconds")
    probe_path: str = Field(default="/favicon.ico", description="Small known-present asset fetched from each origin")
    user_agent: str = Field(default="Status Board Probe", description="User-Agent header sent with probes")

    # Scheduling settings
    refresh_interval_ms: int = Field(default=60_000, gt=0, description="Interval between periodic check cycles")

    # Web presenter settings
    host: str = Field(default="127.0.0.1", description="Dashboard bind address")
    port: int = Field(default=8080, description="Dashboard port")

    categories: list[CategoryConfig] = Field(default_factory=list)

    @field_validator("probe_path")
    @classmethod
    def _absolute_path(cls, value: str) -> str:
        value = str(value or "").strip() or "/favicon.ico"
        return value if value.startswith("/") else f"/{value}"

    @model_validator(mode="after")
    def _unique_service_names(self) -> "DashboardConfig":
        seen: set[str] = set()
        for category in self.categories:
            for service in category.services:
                if service.name in seen:
                    raise ValueError(f"Duplicate service entry: {service.name}")
                seen.add(service.name)
        return self

    def service_categories(self) -> tuple[ServiceCategory, ...]:
        return tuple(
            ServiceCategory(
                name=category.name,
                services=tuple(
                    ServiceDescriptor(
                        name=service.name,
                        url=service.url,
                        description=service.description,
                        category=category.name,
                        kind=service.kind,
                    )
                    for service in category.services
                ),
            )
            for category in self.categories
        )

    def services(self) -> tuple[ServiceDescriptor, ...]:
        return flatten_categories(self.service_categories())


def _read_yaml(path: Path) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError("Config YAML must be a mapping")
    return data


def load_config(config_path: Optional[str] = None) -> DashboardConfig:
    """Load configuration from a YAML file, then apply environment overrides."""
    if config_path is None:
        config_path = os.getenv("STATUS_BOARD_CONFIG") or str(DEFAULT_CONFIG_PATH)

    config_data = _read_yaml(Path(config_path))

    env_overrides = {
        "log_level": os.getenv("LOG_LEVEL"),
        "probe_timeout_ms": os.getenv("STATUS_BOARD_PROBE_TIMEOUT_MS"),
        "refresh_interval_ms": os.getenv("STATUS_BOARD_REFRESH_INTERVAL_MS"),
        "host": os.getenv("STATUS_BOARD_HOST"),
        "port": os.getenv("STATUS_BOARD_PORT"),
    }

    for key, value in env_overrides.items():
        if value is not None and str(value).strip():
            if key in ["probe_timeout_ms", "refresh_interval_ms", "port"]:
                value = int(str(value).strip())
            config_data[key] = value

    return DashboardConfig(**config_data)
