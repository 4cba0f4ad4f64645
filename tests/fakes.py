"""
In-memory stand-in for the async MongoDB driver.

Supports the subset of the query language the repositories use: equality,
``$in`` and ``$gte`` filters, ``$set``/``$inc``/``$setOnInsert`` updates with
upserts, unique indexes, projections, and cursor ``sort``/``skip``/``limit``.
Like the real driver, skips outside the 8-byte integer range cannot be
encoded.
"""

from types import SimpleNamespace
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

MAX_INT64 = 2 ** 63 - 1


# ============================================================================
# IN-MEMORY DRIVER (Test Doubles)
# ============================================================================


def _matches(doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
    for key, condition in query.items():
        value = doc.get(key)
        if isinstance(condition, dict) and any(op.startswith("$") for op in condition):
            for op, argument in condition.items():
                if op == "$in":
                    if value not in argument:
                        return False
                elif op == "$gte":
                    if value is None or value < argument:
                        return False
                else:
                    raise NotImplementedError(op)
        elif value != condition:
            return False
    return True


def _project(doc: Dict[str, Any], projection: Optional[Dict[str, int]]) -> Dict[str, Any]:
    if not projection:
        return dict(doc)
    keep = {key for key, flag in projection.items() if flag} | {"_id"}
    return {key: value for key, value in doc.items() if key in keep}


class FakeCursor:
    def __init__(self, docs: List[Dict[str, Any]]):
        self._docs = docs
        self._skip = 0
        self._limit = 0

    def sort(self, key_or_list, direction: Optional[int] = None) -> "FakeCursor":
        keys = key_or_list if isinstance(key_or_list, list) else [(key_or_list, direction)]
        # stable sorts applied from the least significant key
        for key, key_direction in reversed(keys):
            self._docs = sorted(self._docs, key=lambda doc: doc.get(key), reverse=key_direction < 0)
        return self

    def skip(self, amount: int) -> "FakeCursor":
        if amount > MAX_INT64:
            raise OverflowError("MongoDB can only handle up to 8-byte ints")
        self._skip = amount
        return self

    def limit(self, amount: int) -> "FakeCursor":
        self._limit = amount
        return self

    async def to_list(self, length: Optional[int] = None) -> List[Dict[str, Any]]:
        docs = self._docs[self._skip:]
        if self._limit:
            docs = docs[:self._limit]
        return [dict(doc) for doc in docs]


class FakeCollection:
    def __init__(self, name: str):
        self.name = name
        self.docs: List[Dict[str, Any]] = []
        self.indexes: Dict[str, Dict[str, Any]] = {}

    def seed(self, **fields: Any) -> Dict[str, Any]:
        doc = {"_id": ObjectId(), **fields}
        self.docs.append(doc)
        return dict(doc)

    def _check_unique(self, doc: Dict[str, Any]) -> None:
        for name, index in self.indexes.items():
            if not index["unique"]:
                continue
            key = tuple(doc.get(field) for field in index["fields"])
            if any(tuple(other.get(field) for field in index["fields"]) == key for other in self.docs):
                raise DuplicateKeyError(f"E11000 duplicate key error index: {name}")

    async def create_index(self, keys, unique: bool = False, name: Optional[str] = None) -> str:
        fields = [field for field, _ in keys]
        name = name or "_".join(f"{field}_1" for field in fields)
        self.indexes[name] = {"fields": fields, "unique": unique}
        return name

    def find(self, query: Dict[str, Any], projection: Optional[Dict[str, int]] = None) -> FakeCursor:
        return FakeCursor([_project(doc, projection) for doc in self.docs if _matches(doc, query)])

    async def find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        for doc in self.docs:
            if _matches(doc, query):
                return dict(doc)
        return None

    async def insert_one(self, doc: Dict[str, Any]):
        stored = {"_id": ObjectId(), **doc}
        self._check_unique(stored)
        self.docs.append(stored)
        return SimpleNamespace(inserted_id=stored["_id"])

    async def find_one_and_update(
        self,
        query: Dict[str, Any],
        update: Dict[str, Any],
        upsert: bool = False,
        return_document=None,
    ):
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(update.get("$set", {}))
                for key, amount in update.get("$inc", {}).items():
                    doc[key] = doc.get(key, 0) + amount
                return dict(doc)

        if not upsert:
            return None

        equality = {key: value for key, value in query.items() if not isinstance(value, dict)}
        stored = {"_id": ObjectId(), **equality, **update.get("$setOnInsert", {}), **update.get("$set", {})}
        self._check_unique(stored)
        self.docs.append(stored)
        return dict(stored)

    async def delete_one(self, query: Dict[str, Any]):
        for index, doc in enumerate(self.docs):
            if _matches(doc, query):
                del self.docs[index]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    async def count_documents(self, query: Dict[str, Any]) -> int:
        return sum(1 for doc in self.docs if _matches(doc, query))


class FakeDatabase:
    def __init__(self, name: str):
        self.name = name
        self._collections: Dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self._collections:
            self._collections[name] = FakeCollection(name)
        return self._collections[name]

    async def command(self, name: str) -> Dict[str, Any]:
        return {"ok": 1.0}


class FakeAdmin:
    def __init__(self, fail_with: Optional[Exception] = None):
        self.fail_with = fail_with
        self.commands: List[str] = []

    async def command(self, name: str) -> Dict[str, Any]:
        self.commands.append(name)
        if self.fail_with is not None:
            raise self.fail_with
        return {"ok": 1.0}


class FakeMongoClient:
    def __init__(self, database: FakeDatabase, fail_with: Optional[Exception] = None):
        self.database = database
        self.admin = FakeAdmin(fail_with)
        self.closed = False

    def __getitem__(self, name: str) -> FakeDatabase:
        return self.database

    async def close(self) -> None:
        self.closed = True



# ============================================================================
# IDENTITY (Test Doubles)
# ============================================================================

IDENTITY_HEADER = "X-Test-Identity"


class HeaderIdentityProvider:
    """Identity provider double: the caller is whoever the header names."""

    async def get_current_caller_id(self, request):
        return request.headers.get(IDENTITY_HEADER)

    async def aclose(self) -> None:
        pass


def as_caller(identity_id: str) -> dict:
    return {IDENTITY_HEADER: identity_id}


# ============================================================================
# IMAGE STORE (Test Doubles)
# ============================================================================

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"
