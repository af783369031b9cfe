"""Client configuration storage."""

from typing import List, Optional

from core.errors import ClientNotFound
from core.models.refs import ClientConfig
from core.storage.state_store import StateStore


class ClientConfigStore:
    """Read/write access to per-client integration settings."""

    PREFIX = "client:"

    def __init__(self, store: StateStore):
        self._store = store

    def get(self, client_id: str) -> Optional[ClientConfig]:
        raw = self._store.load(f"{self.PREFIX}{client_id}")
        return ClientConfig.model_validate(raw) if raw else None

    def require(self, client_id: str) -> ClientConfig:
        config = self.get(client_id)
        if config is None:
            raise ClientNotFound(client_id)
        return config

    def save(self, config: ClientConfig) -> ClientConfig:
        self._store.save(f"{self.PREFIX}{config.client_id}", config.model_dump(mode="json"))
        return config

    def delete(self, client_id: str) -> bool:
        return self._store.delete(f"{self.PREFIX}{client_id}")

    def list(self, active_only: bool = False) -> List[ClientConfig]:
        configs = []
        for key in self._store.keys(self.PREFIX):
            raw = self._store.load(key)
            if raw:
                configs.append(ClientConfig.model_validate(raw))
        if active_only:
            configs = [c for c in configs if c.active]
        return configs
