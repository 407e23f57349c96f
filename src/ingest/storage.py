"""storage.py
Durable object storage contract and a filesystem implementation.

Objects live in named buckets under string keys.  Writing an object
overwrites any previous version and then announces it on the bucket's
``<bucket>.object-created`` topic, which is how downstream stages are
triggered.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from src.ingest.bus import MessageBus
from src.ingest.events import ObjectCreated, object_created_topic

logger = logging.getLogger(__name__)


class ObjectStore(ABC):
    @abstractmethod
    async def put(self, bucket: str, key: str, data: bytes) -> None:
        """Store *data* and notify subscribers of the bucket."""

    @abstractmethod
    async def get(self, bucket: str, key: str) -> Optional[bytes]:
        """Return the object, or ``None`` if it does not exist."""

    async def put_json(self, bucket: str, key: str, value: Any) -> None:
        await self.put(bucket, key, json.dumps(value, ensure_ascii=False).encode("utf-8"))

    async def get_json(self, bucket: str, key: str) -> Optional[Any]:
        data = await self.get(bucket, key)
        return None if data is None else json.loads(data)

    async def get_text(self, bucket: str, key: str) -> Optional[str]:
        data = await self.get(bucket, key)
        return None if data is None else data.decode("utf-8")


class LocalObjectStore(ObjectStore):
    """Buckets are directories under *root*; writes are atomic renames."""

    def __init__(self, root: Path, bus: Optional[MessageBus] = None) -> None:
        self._root = Path(root)
        self._bus = bus

    def path(self, bucket: str, key: str) -> Path:
        if not key or key.startswith("/") or ".." in Path(key).parts:
            raise ValueError(f"Invalid object key: {key!r}")
        return self._root / bucket / key

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp_name, target)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    @staticmethod
    def _read(target: Path) -> Optional[bytes]:
        try:
            return target.read_bytes()
        except FileNotFoundError:
            return None

    async def put(self, bucket: str, key: str, data: bytes) -> None:
        await asyncio.to_thread(self._write, self.path(bucket, key), data)

        logger.debug("Stored %s/%s (%d bytes)", bucket, key, len(data))
        if self._bus is not None:
            await self._bus.publish(object_created_topic(bucket), ObjectCreated(bucket=bucket, key=key))

    async def get(self, bucket: str, key: str) -> Optional[bytes]:
        return await asyncio.to_thread(self._read, self.path(bucket, key))
