"""Static service registry config loader."""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from .schemas import Schema


class ServiceConfig(BaseModel):
    """Backend service definition loaded from static config.

    Services sharing a ``group`` are served by the same ProxyApi. A
    ``schema_path`` injects a local schema file instead of fetching
    ``{url}/schema`` at startup.
    """

    name: str
    url: str
    route_prefix: str | None = None
    group: str | None = None
    schema_path: str | None = None


class ServiceRegistryConfig(BaseModel):
    """Container for service definitions."""

    services: list[ServiceConfig] = Field(default_factory=list)

    def grouped(self) -> dict[str, list[ServiceConfig]]:
        """Group services by ``group``, keeping declaration order.

        Ungrouped services get a group of their own, named after the service.
        """
        groups: dict[str, list[ServiceConfig]] = {}
        for service in self.services:
            groups.setdefault(service.group or service.name, []).append(service)
        return groups


def load_service_registry(config_path: str | None = None) -> ServiceRegistryConfig:
    """Load the service registry config from YAML.

    Args:
        config_path: Optional custom path for the service registry config.

    Returns:
        Parsed ServiceRegistryConfig, or an empty config if the file is missing.

    Raises:
        ValueError: If two services share a name.
    """
    if config_path is None:
        config_path = Path(__file__).parent.parent.parent / "config" / "services.yaml"
    else:
        config_path = Path(config_path)

    if not config_path.exists():
        return ServiceRegistryConfig()

    with config_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    registry_config = ServiceRegistryConfig(**data)

    seen_names: set[str] = set()
    for service in registry_config.services:
        if service.name in seen_names:
            raise ValueError(f"duplicate service name in config: {service.name}")
        seen_names.add(service.name)

    return registry_config


def load_schema_file(schema_path: str | Path) -> Schema:
    """Load a service schema from a local JSON or YAML file.

    Args:
        schema_path: Path to the schema document.

    Returns:
        The parsed Schema.
    """
    with Path(schema_path).open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    return Schema.model_validate(data)
