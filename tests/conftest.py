"""
Shared fixtures: settings variants and an in-memory stand-in for ParseClient.

StubParseBackend mirrors the ParseClient coroutine API, keeps objects in
dictionaries and records every call so tests can assert that no backend call
was made.
"""

import copy
import itertools
from typing import Any, Dict, List, Optional

import pytest

from parse_mcp.config import Settings
from parse_mcp.parse_client import OBJECT_NOT_FOUND, ParseError
from parse_mcp.values import encode_fields, encode_value


@pytest.fixture
def anyio_backend():
    return "asyncio"


def _matches(record: Dict[str, Any], where: Optional[Dict[str, Any]]) -> bool:
    for key, condition in (where or {}).items():
        if key == "$relatedTo":
            continue
        if isinstance(condition, dict) and "$exists" in condition:
            if (key in record) != bool(condition["$exists"]):
                return False
        elif record.get(key) != condition:
            return False
    return True


class StubParseBackend:
    """In-memory Parse backend with a call log."""

    def __init__(self):
        self.classes: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.relations: Dict[tuple, List[str]] = {}
        self.schemas: Dict[str, Dict[str, Any]] = {}
        self.config: Dict[str, Any] = {}
        self.calls: List[tuple] = []
        self.fail_with: Optional[Exception] = None
        self._ids = itertools.count(1)

    # === helpers for tests ===

    def add(self, class_name: str, object_id: str, **fields) -> Dict[str, Any]:
        record = {"objectId": object_id, **fields}
        self.classes.setdefault(class_name, {})[object_id] = record
        return record

    def relate(self, class_name: str, object_id: str, key: str, target_ids: List[str]):
        self.relations[(class_name, object_id, key)] = list(target_ids)

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]

    def _record(self, name: str, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        if self.fail_with is not None:
            raise self.fail_with

    def _lookup(self, class_name: str, object_id: str) -> Dict[str, Any]:
        try:
            return self.classes[class_name][object_id]
        except KeyError:
            raise ParseError(OBJECT_NOT_FOUND, "Object not found.") from None

    # === ParseClient API ===

    async def get_schemas(self):
        self._record("get_schemas")
        return list(self.schemas.values())

    async def get_schema(self, class_name):
        self._record("get_schema", class_name)
        if class_name not in self.schemas:
            raise ParseError(103, f"Class {class_name} does not exist.")
        return self.schemas[class_name]

    async def find(self, class_name, where=None, limit=None, skip=None, order=None, include=None, keys=None):
        self._record("find", class_name, where=where, limit=limit, skip=skip, order=order, include=include, keys=keys)
        records = list(self.classes.get(class_name, {}).values())
        related = (where or {}).get("$relatedTo")
        if related is not None:
            pointer = encode_value(related["object"])
            ids = self.relations.get((pointer["className"], pointer["objectId"], related["key"]), [])
            records = [r for r in records if r["objectId"] in ids]
        records = [r for r in records if _matches(r, where)]
        if order:
            field = order.lstrip("-")
            records.sort(key=lambda r: r.get(field, ""), reverse=order.startswith("-"))
        records = records[skip or 0:]
        if limit is not None:
            records = records[:limit]
        return copy.deepcopy(records)

    async def first(self, class_name, where=None, order=None):
        self._record("first", class_name, where=where, order=order)
        records = [r for r in self.classes.get(class_name, {}).values() if _matches(r, where)]
        if order:
            field = order.lstrip("-")
            records.sort(key=lambda r: r.get(field, ""), reverse=order.startswith("-"))
        return copy.deepcopy(records[0]) if records else None

    async def count(self, class_name, where=None):
        self._record("count", class_name, where=where)
        return len([r for r in self.classes.get(class_name, {}).values() if _matches(r, where)])

    async def get(self, class_name, object_id, include=None):
        self._record("get", class_name, object_id, include=include)
        return copy.deepcopy(self._lookup(class_name, object_id))

    async def create(self, class_name, data):
        self._record("create", class_name, data)
        object_id = f"new{next(self._ids)}"
        record = self.add(class_name, object_id, **encode_fields(data), createdAt="2024-01-01T00:00:00.000Z")
        return copy.deepcopy(record)

    async def update(self, class_name, object_id, data):
        self._record("update", class_name, object_id, data)
        record = self._lookup(class_name, object_id)
        response = {"updatedAt": "2024-02-01T00:00:00.000Z"}
        for key, value in encode_fields(data).items():
            if isinstance(value, dict) and value.get("__op") == "Increment":
                record[key] = record.get(key, 0) + value["amount"]
                response[key] = record[key]
            elif isinstance(value, dict) and value.get("__op") == "Delete":
                record.pop(key, None)
            elif isinstance(value, dict) and value.get("__op") in ("AddRelation", "RemoveRelation"):
                ids = self.relations.setdefault((class_name, object_id, key), [])
                for target in value["objects"]:
                    if value["__op"] == "AddRelation":
                        ids.append(target["objectId"])
                    elif target["objectId"] in ids:
                        ids.remove(target["objectId"])
            else:
                record[key] = value
        return response

    async def destroy(self, class_name, object_id):
        self._record("destroy", class_name, object_id)
        self._lookup(class_name, object_id)
        del self.classes[class_name][object_id]

    async def run_function(self, name, params=None):
        self._record("run_function", name, params)
        return {"called": name, "params": params}

    async def aggregate(self, class_name, pipeline):
        self._record("aggregate", class_name, pipeline)
        return [{"objectId": "group", "count": len(self.classes.get(class_name, {}))}]

    async def save_all(self, class_name, objects):
        self._record("save_all", class_name, objects)
        saved = []
        for data in objects:
            object_id = f"new{next(self._ids)}"
            saved.append(copy.deepcopy(self.add(class_name, object_id, **encode_fields(data))))
        return saved

    async def destroy_all(self, class_name, object_ids):
        self._record("destroy_all", class_name, object_ids)
        for object_id in object_ids:
            self.classes.get(class_name, {}).pop(object_id, None)

    async def get_config(self):
        self._record("get_config")
        return dict(self.config)

    async def save_config(self, params):
        self._record("save_config", params)
        self.config.update(params)
        return True

    async def aclose(self):
        pass


@pytest.fixture
def settings():
    return Settings(
        server_url="http://localhost:1337/parse",
        app_id="test-app",
        master_key="master",
    )


@pytest.fixture
def settings_without_master_key():
    return Settings(server_url="http://localhost:1337/parse", app_id="test-app")


@pytest.fixture
def unconfigured_settings():
    return Settings()


@pytest.fixture
def backend():
    return StubParseBackend()
