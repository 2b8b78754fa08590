"""Resolution of logical destination names to connection details."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from outbox_service.core.exceptions import DestinationNotFoundError
from outbox_service.core.settings import get_outbox_settings

if TYPE_CHECKING:
    from collections.abc import Mapping

    from outbox_service.core.settings import DestinationConfig


@dataclass(frozen=True, slots=True)
class Destination:
    """Connection details for one destination."""

    name: str
    url: str
    secret: str | None = None
    token: str | None = None
    username: str | None = None
    password: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    timeout_seconds: float | None = None

    @classmethod
    def from_config(cls, name: str, config: DestinationConfig) -> Destination:
        return cls(
            name=name,
            url=config.url,
            secret=config.secret.get_secret_value() if config.secret else None,
            token=config.token.get_secret_value() if config.token else None,
            username=config.username,
            password=config.password.get_secret_value() if config.password else None,
            headers=dict(config.headers),
            timeout_seconds=config.timeout_seconds,
        )


class DestinationResolver(Protocol):
    def resolve(self, name: str) -> Destination: ...


class SettingsDestinationResolver:
    """Looks destinations up in ``OutboxSettings.destinations``."""

    def __init__(self, destinations: Mapping[str, DestinationConfig] | None = None) -> None:
        if destinations is None:
            destinations = get_outbox_settings().destinations
        self._destinations = {
            name: Destination.from_config(name, config) for name, config in destinations.items()
        }

    @property
    def names(self) -> list[str]:
        return sorted(self._destinations)

    def resolve(self, name: str) -> Destination:
        try:
            return self._destinations[name]
        except KeyError:
            raise DestinationNotFoundError(name) from None


__all__ = ["Destination", "DestinationResolver", "SettingsDestinationResolver"]
