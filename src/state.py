"""
Local endpoint state.

The engine is stateless; whatever it returns (including the remote
reference) is persisted here between invocations, keyed by resource name.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from models import Endpoint
from settings import endpoint_from_declaration, endpoint_to_declaration

logger = logging.getLogger(__name__)

STATE_VERSION = 1


class StateStore(ABC):
    """Abstract store of reconciled endpoints."""

    @abstractmethod
    def get(self, name: str) -> Optional[Endpoint]:
        pass

    @abstractmethod
    def save(self, name: str, endpoint: Endpoint) -> None:
        pass

    @abstractmethod
    def delete(self, name: str) -> bool:
        """Remove a resource's state. Returns False if there was none."""
        pass

    @abstractmethod
    def names(self) -> List[str]:
        pass


class InMemoryStateStore(StateStore):
    def __init__(self):
        self._endpoints: Dict[str, Endpoint] = {}

    def get(self, name: str) -> Optional[Endpoint]:
        return self._endpoints.get(name)

    def save(self, name: str, endpoint: Endpoint) -> None:
        self._endpoints[name] = endpoint

    def delete(self, name: str) -> bool:
        return self._endpoints.pop(name, None) is not None

    def names(self) -> List[str]:
        return sorted(self._endpoints)


class JsonStateStore(StateStore):
    """
    State persisted as a JSON file of endpoint declarations.

    The file holds secrets (endpoint passwords) and is written with owner-only
    permissions.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def _load(self) -> Dict[str, Dict]:
        if not self.path.exists():
            return {}
        with open(self.path, "r") as f:
            data = json.load(f)
        if data.get("version") != STATE_VERSION:
            raise ValueError(
                f"Unsupported state file version {data.get('version')} in {self.path}"
            )
        return data.get("endpoints", {})

    def _write(self, endpoints: Dict[str, Dict]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            json.dump({"version": STATE_VERSION, "endpoints": endpoints}, f, indent=2)
        os.replace(tmp, self.path)

    def get(self, name: str) -> Optional[Endpoint]:
        declaration = self._load().get(name)
        if declaration is None:
            return None
        return endpoint_from_declaration(declaration)

    def save(self, name: str, endpoint: Endpoint) -> None:
        endpoints = self._load()
        endpoints[name] = endpoint_to_declaration(endpoint)
        self._write(endpoints)
        logger.debug(f"Saved state for {name} to {self.path}")

    def delete(self, name: str) -> bool:
        endpoints = self._load()
        if name not in endpoints:
            return False
        del endpoints[name]
        self._write(endpoints)
        return True

    def names(self) -> List[str]:
        return sorted(self._load())
