"""JSON file persistence for items, dependencies and planner config."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable
from pathlib import Path

from takt.models import Dependency, Item, PlannerConfig

logger = logging.getLogger("takt.persistence")

DEFAULT_DB_FILE = "takt.json"


def default_db_path() -> Path:
    """Store location: $TAKT_DB if set, else ./takt.json."""
    return Path(os.environ.get("TAKT_DB") or DEFAULT_DB_FILE)


class Store:
    """Reads and writes the planner database (JSON file).

    Every mutation loads the file, applies one change and writes it back, so
    each call sees a fresh snapshot.
    """

    def __init__(self, db_path: str | Path | None = None):
        self.db_path = Path(db_path) if db_path is not None else default_db_path()

    def _read(self) -> dict:
        if not self.db_path.exists():
            return {"items": {}, "dependencies": []}
        raw = json.loads(self.db_path.read_text())
        raw.setdefault("items", {})
        raw.setdefault("dependencies", [])
        return raw

    def _write(self, raw: dict) -> None:
        self.db_path.write_text(json.dumps(raw, indent=4))

    # -- config -------------------------------------------------------------

    def load_config(self) -> PlannerConfig:
        raw = self._read()
        if "config" in raw:
            return PlannerConfig.from_dict(raw["config"])
        return PlannerConfig()

    def save_config(self, config: PlannerConfig) -> None:
        raw = self._read()
        raw["config"] = config.to_dict()
        self._write(raw)

    # -- items --------------------------------------------------------------

    def list_items(self) -> list[Item]:
        return [Item.from_dict(iid, d) for iid, d in self._read()["items"].items()]

    def get_item(self, item_id: str) -> Item | None:
        d = self._read()["items"].get(item_id)
        return Item.from_dict(item_id, d) if d is not None else None

    def generate_id(self) -> str:
        """Generate the next T-N id."""
        existing = [int(k.split("-")[1]) for k in self._read()["items"] if k.startswith("T-") and k[2:].isdigit()]
        next_num = max(existing, default=0) + 1
        return f"T-{next_num}"

    def add_item(self, item: Item) -> Item:
        raw = self._read()
        if item.id in raw["items"]:
            raise KeyError(f"Item {item.id} already exists")
        raw["items"][item.id] = item.to_dict()
        self._write(raw)
        return item

    def add_items(self, items: list[Item], edges: Iterable[Dependency] = ()) -> None:
        """Write several items and their edges in one file write."""
        raw = self._read()
        for item in items:
            if item.id in raw["items"]:
                raise KeyError(f"Item {item.id} already exists")
            raw["items"][item.id] = item.to_dict()
        raw["dependencies"].extend(e.to_dict() for e in edges)
        self._write(raw)

    def update_item(self, item_id: str, patch: dict) -> Item:
        """Merge *patch* into a stored item. Raises KeyError for an unknown id."""
        raw = self._read()
        if item_id not in raw["items"]:
            raise KeyError(f"Item {item_id} not found")
        merged = {**raw["items"][item_id], **patch}
        item = Item.from_dict(item_id, merged)
        raw["items"][item_id] = item.to_dict()
        self._write(raw)
        return item

    def delete_item(self, item_id: str) -> bool:
        """Remove an item and every dependency that references it."""
        raw = self._read()
        if item_id not in raw["items"]:
            return False
        del raw["items"][item_id]
        before = len(raw["dependencies"])
        raw["dependencies"] = [
            d for d in raw["dependencies"]
            if d["predecessor_id"] != item_id and d["successor_id"] != item_id
        ]
        self._write(raw)
        logger.debug("Deleted %s and %d dependencies", item_id, before - len(raw["dependencies"]))
        return True

    # -- dependencies -------------------------------------------------------

    def list_edges(self) -> list[Dependency]:
        return [Dependency.from_dict(d) for d in self._read()["dependencies"]]

    def create_edge(self, predecessor_id: str, successor_id: str) -> Dependency:
        """Persist an edge. Callers must run the cycle check first."""
        raw = self._read()
        edge = Dependency(predecessor_id, successor_id)
        if edge.to_dict() not in raw["dependencies"]:
            raw["dependencies"].append(edge.to_dict())
            self._write(raw)
        return edge

    def delete_edge(self, predecessor_id: str, successor_id: str) -> bool:
        raw = self._read()
        target = Dependency(predecessor_id, successor_id).to_dict()
        if target not in raw["dependencies"]:
            return False
        raw["dependencies"].remove(target)
        self._write(raw)
        return True
