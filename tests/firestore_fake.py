"""
In-memory stand-in for the Firestore client used by the services.

Covers the subset the API touches: collection/document refs, set (with merge),
update with dotted paths, delete, where/order_by/offset/limit queries, count
aggregation, batches and the SERVER_TIMESTAMP / Increment / ArrayUnion /
ArrayRemove / DELETE_FIELD transforms.
"""
import copy
import itertools
import uuid
from datetime import datetime, timedelta, timezone

from google.api_core.exceptions import NotFound
from google.cloud.firestore_v1 import DELETE_FIELD, SERVER_TIMESTAMP
from google.cloud.firestore_v1.transforms import ArrayRemove, ArrayUnion, Increment

_MISSING = object()


class _Clock:
    """Strictly increasing timestamps so ordering by createdAt is deterministic."""

    def __init__(self):
        self._start = datetime.now(timezone.utc)
        self._ticks = itertools.count(1)

    def now(self):
        return self._start + timedelta(milliseconds=next(self._ticks))


def _get_path(data, path):
    cur = data
    for part in path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return _MISSING
        cur = cur[part]
    return cur


def _apply_value(current, value, clock):
    if value is SERVER_TIMESTAMP:
        return clock.now()
    if isinstance(value, Increment):
        base = current if isinstance(current, (int, float)) else 0
        return base + value.value
    if isinstance(value, ArrayUnion):
        out = list(current) if isinstance(current, list) else []
        for item in value.values:
            if item not in out:
                out.append(item)
        return out
    if isinstance(value, ArrayRemove):
        out = list(current) if isinstance(current, list) else []
        return [item for item in out if item not in value.values]
    if isinstance(value, dict):
        return {k: _apply_value(_MISSING, v, clock) for k, v in value.items()}
    return copy.deepcopy(value)


def _set_path(data, path, value, clock):
    parts = path.split(".")
    cur = data
    for part in parts[:-1]:
        nxt = cur.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            cur[part] = nxt
        cur = nxt
    leaf = parts[-1]
    if value is DELETE_FIELD:
        cur.pop(leaf, None)
        return
    cur[leaf] = _apply_value(cur.get(leaf, _MISSING), value, clock)


def _matches(doc, field, op, value):
    actual = _get_path(doc, field)
    if actual is _MISSING:
        return False
    try:
        if op == "==":
            return actual == value
        if op == "!=":
            return actual != value
        if op == "<":
            return actual < value
        if op == "<=":
            return actual <= value
        if op == ">":
            return actual > value
        if op == ">=":
            return actual >= value
        if op == "in":
            return actual in value
        if op == "not-in":
            return actual not in value
        if op == "array_contains":
            return isinstance(actual, list) and value in actual
        if op == "array_contains_any":
            return isinstance(actual, list) and any(v in actual for v in value)
    except TypeError:
        return False
    raise ValueError(f"unsupported operator {op}")


class FakeSnapshot:
    def __init__(self, reference, data):
        self.reference = reference
        self.id = reference.id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data) if self._data is not None else None


class FakeDocumentRef:
    def __init__(self, store, collection, doc_id):
        self._store = store
        self._collection = collection
        self.id = doc_id

    @property
    def _docs(self):
        return self._store.data.setdefault(self._collection, {})

    def get(self):
        return FakeSnapshot(self, copy.deepcopy(self._docs.get(self.id)))

    def set(self, data, merge=False):
        doc = copy.deepcopy(self._docs.get(self.id, {})) if merge else {}
        for key, value in data.items():
            if merge:
                _set_path(doc, key, value, self._store.clock)
            elif value is not DELETE_FIELD:
                doc[key] = _apply_value(_MISSING, value, self._store.clock)
        self._docs[self.id] = doc

    def update(self, data):
        if self.id not in self._docs:
            raise NotFound(f"No document to update: {self._collection}/{self.id}")
        doc = self._docs[self.id]
        for key, value in data.items():
            _set_path(doc, key, value, self._store.clock)

    def delete(self):
        self._docs.pop(self.id, None)


class FakeAggregation:
    def __init__(self, value):
        self.value = value


class FakeAggregationQuery:
    def __init__(self, query):
        self._query = query

    def get(self):
        return [[FakeAggregation(sum(1 for _ in self._query.stream()))]]


class FakeQuery:
    def __init__(self, store, collection, filters=(), orders=(), offset=0, limit=None):
        self._store = store
        self._collection = collection
        self._filters = tuple(filters)
        self._orders = tuple(orders)
        self._offset = offset
        self._limit = limit

    def _clone(self, **changes):
        params = {
            "filters": self._filters,
            "orders": self._orders,
            "offset": self._offset,
            "limit": self._limit,
        }
        params.update(changes)
        return FakeQuery(self._store, self._collection, **params)

    def where(self, field, op, value):
        return self._clone(filters=self._filters + ((field, op, value),))

    def order_by(self, field, direction="ASCENDING"):
        return self._clone(orders=self._orders + ((field, direction),))

    def offset(self, n):
        return self._clone(offset=n)

    def limit(self, n):
        return self._clone(limit=n)

    def count(self):
        return FakeAggregationQuery(self)

    def stream(self):
        docs = self._store.data.get(self._collection, {})
        rows = sorted(docs.items())
        rows = [(i, d) for i, d in rows if all(_matches(d, f, op, v) for f, op, v in self._filters)]
        for field, direction in reversed(self._orders):
            rows = [(i, d) for i, d in rows if _get_path(d, field) is not _MISSING]
            rows.sort(key=lambda row: _get_path(row[1], field), reverse=str(direction).upper() == "DESCENDING")
        rows = rows[self._offset :]
        if self._limit is not None:
            rows = rows[: self._limit]
        for doc_id, data in rows:
            ref = FakeDocumentRef(self._store, self._collection, doc_id)
            yield FakeSnapshot(ref, copy.deepcopy(data))

    def get(self):
        return list(self.stream())


class FakeCollectionRef(FakeQuery):
    def __init__(self, store, name):
        super().__init__(store, name)
        self.id = name

    def document(self, doc_id=None):
        return FakeDocumentRef(self._store, self._collection, doc_id or uuid.uuid4().hex[:20])

    def add(self, data):
        ref = self.document()
        ref.set(data)
        return self._store.clock.now(), ref


class FakeBatch:
    def __init__(self):
        self._ops = []

    def set(self, ref, data, merge=False):
        self._ops.append(lambda: ref.set(data, merge=merge))

    def update(self, ref, data):
        self._ops.append(lambda: ref.update(data))

    def delete(self, ref):
        self._ops.append(ref.delete)

    def commit(self):
        for op in self._ops:
            op()
        self._ops = []


class FakeFirestore:
    def __init__(self):
        self.data = {}
        self.clock = _Clock()

    def collection(self, name):
        return FakeCollectionRef(self, name)

    def collections(self):
        return [FakeCollectionRef(self, name) for name in sorted(self.data) if self.data[name]]

    def batch(self):
        return FakeBatch()

    # test helpers

    def seed(self, collection, doc_id, data):
        self.data.setdefault(collection, {})[doc_id] = copy.deepcopy(data)

    def doc(self, collection, doc_id):
        return copy.deepcopy(self.data.get(collection, {}).get(doc_id))
