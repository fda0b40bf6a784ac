# foodconnect/repos/inmemory.py
import asyncio
import copy
import re
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from foodconnect.db import new_id

# --------------------------------------------------
# Query evaluation (the subset of MongoDB the core uses)
# --------------------------------------------------
def _resolve(doc: dict, path: str) -> list:
    """Values reachable at a dotted path, walking through arrays like MongoDB."""
    values = [doc]
    for part in path.split("."):
        nxt = []
        for v in values:
            if isinstance(v, dict):
                if part in v:
                    nxt.append(v[part])
            elif isinstance(v, list):
                for el in v:
                    if isinstance(el, dict) and part in el:
                        nxt.append(el[part])
        values = nxt
    out = []
    for v in values:
        out.append(v)
        if isinstance(v, list):
            out.extend(v)
    return out

def _compare(op: str, v, target) -> bool:
    if v is None:
        return False
    try:
        if op == "$gt":
            return v > target
        if op == "$gte":
            return v >= target
        if op == "$lt":
            return v < target
        return v <= target
    except TypeError:
        return False

def _is_operator_doc(cond) -> bool:
    return isinstance(cond, dict) and bool(cond) and all(k.startswith("$") for k in cond)

def _match_values(values: list, cond) -> bool:
    if not _is_operator_doc(cond):
        if not values:
            return cond is None
        return any(v == cond for v in values)

    for op, target in cond.items():
        if op == "$options":
            continue
        if op == "$eq":
            ok = _match_values(values, target)
        elif op == "$ne":
            ok = not _match_values(values, target)
        elif op == "$in":
            ok = any(_match_values(values, t) for t in target)
        elif op == "$nin":
            ok = not any(_match_values(values, t) for t in target)
        elif op in ("$gt", "$gte", "$lt", "$lte"):
            ok = any(_compare(op, v, target) for v in values)
        elif op == "$regex":
            flags = re.IGNORECASE if "i" in cond.get("$options", "") else 0
            rx = re.compile(target, flags)
            ok = any(isinstance(v, str) and rx.search(v) for v in values)
        elif op == "$exists":
            ok = bool(values) == bool(target)
        elif op == "$size":
            ok = any(isinstance(v, list) and len(v) == target for v in values)
        else:
            raise ValueError(f"Unsupported query operator: {op}")
        if not ok:
            return False
    return True

def matches(doc: dict, query: dict) -> bool:
    for key, cond in (query or {}).items():
        if key == "$or":
            if not any(matches(doc, q) for q in cond):
                return False
        elif key == "$and":
            if not all(matches(doc, q) for q in cond):
                return False
        elif not _match_values(_resolve(doc, key), cond):
            return False
    return True

def apply_update(doc: dict, update: dict) -> None:
    """Apply update operators in place. Only top-level fields are addressed."""
    for op, fields in update.items():
        for key, val in fields.items():
            if op == "$set":
                doc[key] = copy.deepcopy(val)
            elif op == "$unset":
                doc.pop(key, None)
            elif op == "$inc":
                doc[key] = (doc.get(key) or 0) + val
            elif op == "$addToSet":
                arr = doc.setdefault(key, [])
                if val not in arr:
                    arr.append(copy.deepcopy(val))
            elif op == "$pull":
                doc[key] = [x for x in doc.get(key, []) if x != val]
            else:
                raise ValueError(f"Unsupported update operator: {op}")

def _sort_docs(docs: List[dict], sort) -> None:
    # stable multi-key sort: apply keys from last to first
    for field, direction in reversed(list(sort)):
        docs.sort(key=lambda d: (d.get(field) is not None, d.get(field)), reverse=direction < 0)

# --------------------------------------------------
# Store
# --------------------------------------------------
class _Store:
    def __init__(self):
        self.collections: Dict[str, Dict[str, dict]] = defaultdict(dict)

    def insert_one(self, col: str, doc: dict) -> dict:
        doc = copy.deepcopy(doc)
        doc.setdefault("_id", new_id())
        if doc["_id"] in self.collections[col]:
            raise ValueError(f"Duplicate _id in {col}: {doc['_id']}")
        self.collections[col][doc["_id"]] = doc
        return copy.deepcopy(doc)

    def _matching(self, col: str, query: dict) -> List[dict]:
        return [d for d in self.collections[col].values() if matches(d, query)]

    def find_one(self, col: str, query: dict) -> Optional[dict]:
        for d in self.collections[col].values():
            if matches(d, query):
                return copy.deepcopy(d)
        return None

    def find(self, col: str, query: dict, sort=None, skip: int = 0, limit: int = 0) -> List[dict]:
        docs = self._matching(col, query)
        if sort:
            _sort_docs(docs, sort)
        docs = docs[skip:]
        if limit:
            docs = docs[:limit]
        return copy.deepcopy(docs)

    def count(self, col: str, query: dict) -> int:
        return len(self._matching(col, query))

    def update_one(self, col: str, query: dict, update: dict) -> bool:
        for d in self.collections[col].values():
            if matches(d, query):
                apply_update(d, update)
                return True
        return False

    def update_many(self, col: str, query: dict, update: dict) -> int:
        hits = self._matching(col, query)
        for d in hits:
            apply_update(d, update)
        return len(hits)

    def delete_one(self, col: str, query: dict) -> bool:
        for _id, d in list(self.collections[col].items()):
            if matches(d, query):
                del self.collections[col][_id]
                return True
        return False


class _AsyncOps:
    """Async surface shared by InMemoryRepo and its transaction handle."""

    async def _call(self, name: str, *args, **kwargs):
        raise NotImplementedError

    async def insert_one(self, col: str, doc: dict) -> dict:
        return await self._call("insert_one", col, doc)

    async def find_one(self, col: str, query: dict) -> Optional[dict]:
        return await self._call("find_one", col, query)

    async def find(self, col: str, query: dict, sort=None, skip: int = 0, limit: int = 0) -> List[dict]:
        return await self._call("find", col, query, sort=sort, skip=skip, limit=limit)

    async def count(self, col: str, query: dict) -> int:
        return await self._call("count", col, query)

    async def update_one(self, col: str, query: dict, update: dict) -> bool:
        return await self._call("update_one", col, query, update)

    async def update_many(self, col: str, query: dict, update: dict) -> int:
        return await self._call("update_many", col, query, update)

    async def delete_one(self, col: str, query: dict) -> bool:
        return await self._call("delete_one", col, query)


class _Session(_AsyncOps):
    def __init__(self, store: _Store):
        self._store = store

    async def _call(self, name: str, *args, **kwargs):
        return getattr(self._store, name)(*args, **kwargs)

    @asynccontextmanager
    async def transaction(self):
        # nested units join the outer one
        yield self


class InMemoryRepo(_AsyncOps):
    """
    Process-local document store with the same surface as MongoRepo.

    Every call holds one lock, so single operations are atomic. transaction()
    holds the lock for the whole unit and restores a snapshot if the body raises.
    """

    def __init__(self):
        self._store = _Store()
        self._lock = asyncio.Lock()

    async def _call(self, name: str, *args, **kwargs):
        async with self._lock:
            return getattr(self._store, name)(*args, **kwargs)

    @asynccontextmanager
    async def transaction(self):
        async with self._lock:
            snapshot = copy.deepcopy(self._store.collections)
            try:
                yield _Session(self._store)
            except BaseException:
                self._store.collections = snapshot
                raise

    async def ensure_indexes(self) -> None:
        return None

    def close(self) -> None:
        return None
