"""Mock MongoDB client for testing.

Supports the subset of the Motor API the repositories use: equality and
comparison filters on dotted paths, ``$set`` updates, upserts, sort and
limit.
"""

import copy
from typing import Any
from unittest.mock import MagicMock

_MISSING = object()


def _get_path(document: dict[str, Any], path: str) -> Any:
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _set_path(document: dict[str, Any], path: str, value: Any) -> None:
    *parents, leaf = path.split(".")
    target = document
    for part in parents:
        target = target.setdefault(part, {})
    target[leaf] = value


def _matches(document: dict[str, Any], filter_: dict[str, Any]) -> bool:
    for path, expected in filter_.items():
        actual = _get_path(document, path)
        if isinstance(expected, dict) and any(k.startswith("$") for k in expected):
            for op, operand in expected.items():
                if actual is _MISSING:
                    return False
                if op == "$lte" and not actual <= operand:
                    return False
                if op == "$lt" and not actual < operand:
                    return False
                if op == "$gte" and not actual >= operand:
                    return False
                if op == "$in" and actual not in operand:
                    return False
                if op == "$ne" and actual == operand:
                    return False
        elif actual is _MISSING or actual != expected:
            return False
    return True


class MockMongoCollection:
    """Mock MongoDB collection."""

    def __init__(self) -> None:
        self._documents: list[dict[str, Any]] = []

    @property
    def documents(self) -> list[dict[str, Any]]:
        return self._documents

    async def insert_one(self, document: dict[str, Any]) -> MagicMock:
        self._documents.append(copy.deepcopy(document))
        result = MagicMock()
        result.inserted_id = document.get("id")
        return result

    async def replace_one(
        self,
        filter_: dict[str, Any],
        replacement: dict[str, Any],
        upsert: bool = False,
    ) -> MagicMock:
        result = MagicMock()
        for index, doc in enumerate(self._documents):
            if _matches(doc, filter_):
                self._documents[index] = copy.deepcopy(replacement)
                result.modified_count = 1
                return result
        if upsert:
            self._documents.append(copy.deepcopy(replacement))
        result.modified_count = 0
        return result

    async def update_one(self, filter_: dict[str, Any], update: dict[str, Any]) -> MagicMock:
        result = MagicMock()
        result.modified_count = 0
        for doc in self._documents:
            if _matches(doc, filter_):
                for path, value in update.get("$set", {}).items():
                    _set_path(doc, path, copy.deepcopy(value))
                result.modified_count = 1
                break
        return result

    async def find_one(self, filter_: dict[str, Any]) -> dict[str, Any] | None:
        for doc in self._documents:
            if _matches(doc, filter_):
                return copy.deepcopy(doc)
        return None

    async def count_documents(self, filter_: dict[str, Any], limit: int = 0) -> int:
        count = sum(1 for doc in self._documents if _matches(doc, filter_))
        return min(count, limit) if limit else count

    async def create_index(self, *args: Any, **kwargs: Any) -> str:
        return "index"

    def find(self, filter_: dict[str, Any] | None = None) -> "MockCursor":
        docs = [copy.deepcopy(d) for d in self._documents if _matches(d, filter_ or {})]
        return MockCursor(docs)


class MockCursor:
    """Mock MongoDB cursor."""

    def __init__(self, documents: list[dict[str, Any]]) -> None:
        self._documents = documents

    def sort(self, key: str, direction: int = 1) -> "MockCursor":
        self._documents.sort(key=lambda d: _get_path(d, key), reverse=direction < 0)
        return self

    def limit(self, n: int) -> "MockCursor":
        self._documents = self._documents[:n]
        return self

    def __aiter__(self) -> "MockCursor":
        self._index = 0
        return self

    async def __anext__(self) -> dict[str, Any]:
        if self._index >= len(self._documents):
            raise StopAsyncIteration
        doc = self._documents[self._index]
        self._index += 1
        return doc


class MockMongoClient:
    """Mock MongoDB client for testing."""

    def __init__(self) -> None:
        self._collections: dict[str, MockMongoCollection] = {}

    def __getitem__(self, name: str) -> MockMongoCollection:
        if name not in self._collections:
            self._collections[name] = MockMongoCollection()
        return self._collections[name]

    @property
    def recall_sets(self) -> MockMongoCollection:
        return self["recall_sets"]

    @property
    def recall_points(self) -> MockMongoCollection:
        return self["recall_points"]

    @property
    def sessions(self) -> MockMongoCollection:
        return self["sessions"]

    @property
    def session_messages(self) -> MockMongoCollection:
        return self["session_messages"]

    @property
    def tangent_events(self) -> MockMongoCollection:
        return self["tangent_events"]

    @property
    def recall_outcomes(self) -> MockMongoCollection:
        return self["recall_outcomes"]

    @property
    def session_metrics(self) -> MockMongoCollection:
        return self["session_metrics"]

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    async def create_indexes(self) -> None:
        pass
