"""
Record sources - where agents, models and providers come from.

The application's database is not part of this package; anything that can
list the three record kinds satisfies RecordSource. StaticRecordSource holds
them in memory; FileRecordSource reads a YAML or JSON file (used by the CLI).
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional, Protocol

import yaml

from ai_comms.config import Agent, Model, Provider
from ai_comms.errors import ConfigurationError

logger = logging.getLogger(__name__)


class RecordSource(Protocol):
    """Lists every record of each kind. No paging; callers filter."""

    async def list_agents(self) -> list[Agent]:
        ...

    async def list_models(self) -> list[Model]:
        ...

    async def list_providers(self) -> list[Provider]:
        ...


class StaticRecordSource:
    """In-memory records. Returns copies so callers cannot mutate the source."""

    def __init__(
        self,
        agents: Iterable[Agent] = (),
        models: Iterable[Model] = (),
        providers: Iterable[Provider] = (),
    ):
        self.agents = list(agents)
        self.models = list(models)
        self.providers = list(providers)

    async def list_agents(self) -> list[Agent]:
        return [a.model_copy(deep=True) for a in self.agents]

    async def list_models(self) -> list[Model]:
        return [m.model_copy(deep=True) for m in self.models]

    async def list_providers(self) -> list[Provider]:
        return [p.model_copy(deep=True) for p in self.providers]


def parse_records(data: Any) -> StaticRecordSource:
    """
    Build a source from a mapping with "providers", "models" and "agents" lists.

    Raises:
        ConfigurationError: if the data is not shaped like a records file
    """
    if not isinstance(data, dict):
        raise ConfigurationError("Records file must contain a mapping")
    try:
        return StaticRecordSource(
            agents=[Agent.model_validate(a) for a in data.get("agents") or []],
            models=[Model.model_validate(m) for m in data.get("models") or []],
            providers=[Provider.model_validate(p) for p in data.get("providers") or []],
        )
    except ValueError as e:
        raise ConfigurationError(f"Invalid records: {e}") from e


class FileRecordSource:
    """
    Records from a YAML (.yaml/.yml) or JSON file.

    The file is checked on every listing so edits apply to the next call.
    It is only re-read when its size or modification time changed, and the
    read runs in a worker thread.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()
        self._loaded_key: Optional[tuple[int, int]] = None
        self._loaded: Optional[StaticRecordSource] = None

    def load(self) -> StaticRecordSource:
        try:
            stat = self.path.stat()
        except OSError as e:
            raise ConfigurationError(f"Cannot read records file {self.path}: {e}") from e
        key = (stat.st_mtime_ns, stat.st_size)
        if self._loaded is not None and key == self._loaded_key:
            return self._loaded

        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot read records file {self.path}: {e}") from e

        try:
            if self.path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(text)
            else:
                data = json.loads(text)
        except (yaml.YAMLError, ValueError) as e:
            raise ConfigurationError(f"Cannot parse records file {self.path}: {e}") from e

        logger.debug("Loaded records from %s", self.path)
        self._loaded = parse_records(data)
        self._loaded_key = key
        return self._loaded

    async def _records(self) -> StaticRecordSource:
        # Concurrent listings share one read
        async with self._lock:
            return await asyncio.to_thread(self.load)

    async def list_agents(self) -> list[Agent]:
        return await (await self._records()).list_agents()

    async def list_models(self) -> list[Model]:
        return await (await self._records()).list_models()

    async def list_providers(self) -> list[Provider]:
        return await (await self._records()).list_providers()
