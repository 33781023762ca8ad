"""JSON-file accessory host.

Implements IAccessoryHost by keeping registered accessories in memory and
persisting the minimal restore record of each one ({uuid, unique_id, code,
display_name}) to a JSON file, so the next start can rebuild handlers
before discovery runs.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Union

from ..domain.accessory import Accessory
from ..domain.entities import CachedAccessory, DeviceIdentity
from ..domain.ports import IAccessoryHost

logger = logging.getLogger(__name__)


class JsonAccessoryStore(IAccessoryHost):
    """Persists accessory restore records to a JSON file.

    File format:
        {"accessories": [{"uuid": ..., "unique_id": ..., "code": ..., "display_name": ...}]}
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._records: dict[str, dict[str, Any]] = {}
        self.accessories: dict[str, Accessory] = {}

    async def register_accessories(self, accessories: list[Accessory]) -> None:
        if not accessories:
            return
        for accessory in accessories:
            key = str(accessory.identity)
            self.accessories[key] = accessory
            self._records[key] = {
                "uuid": key,
                "unique_id": accessory.unique_id,
                "code": accessory.code,
                "display_name": accessory.display_name,
            }
        self._save()
        logger.debug(f"Saved {len(self._records)} accessory record(s) to {self.path}")

    async def load_cached(self) -> list[CachedAccessory]:
        records = self._load()
        cached: list[CachedAccessory] = []
        for record in records:
            try:
                unique_id = str(record["unique_id"])
                code = str(record["code"])
            except (KeyError, TypeError):
                logger.debug(f"Skipping malformed cache record: {record!r}")
                continue
            identity = DeviceIdentity.derive(unique_id)
            if record.get("uuid") not in (None, identity.value):
                logger.warning(
                    f"Cache record for {unique_id} has uuid {record.get('uuid')}, "
                    f"expected {identity}; using the derived identity"
                )
            self._records[identity.value] = {
                "uuid": identity.value,
                "unique_id": unique_id,
                "code": code,
                "display_name": record.get("display_name"),
            }
            cached.append(
                CachedAccessory(
                    identity=identity,
                    unique_id=unique_id,
                    code=code,
                    display_name=record.get("display_name"),
                )
            )
        logger.info(f"Loaded {len(cached)} accessory record(s) from {self.path}")
        return cached

    def _load(self) -> list[Any]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable accessory cache {self.path}: {e}")
            return []
        records = data.get("accessories") if isinstance(data, dict) else None
        return records if isinstance(records, list) else []

    def _save(self) -> None:
        """Write the cache atomically (temp file then rename)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump({"accessories": list(self._records.values())}, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise
