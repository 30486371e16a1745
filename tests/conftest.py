# tests/conftest.py
import asyncio
import copy
import os
import re
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

import lifemate.db.mongo as mongo
from lifemate.core.config import Settings
from lifemate.core.security import PasswordHasher
from lifemate.services.mailer import MailDeliveryError
from lifemate.services.storage import StorageError, StoredObject, safe_name
from lifemate.services.tokens import TokenIssuer


# ---------------------------------------------------------------------------
# In-memory stand-in for the motor collection API used by the repositories.
# Supports the query/update operators those modules issue, nothing more.
# Each call yields to the event loop first, as a motor round trip does, and
# then applies atomically, as the server does for a single document.
# ---------------------------------------------------------------------------

_MISSING = object()


def _candidates(doc, path):
    """Values at a dotted path; array elements are searched like Mongo does."""
    values = [doc]
    for part in path.split("."):
        nxt = []
        for value in values:
            if isinstance(value, dict):
                nxt.append(value.get(part, _MISSING))
            elif isinstance(value, list):
                if part.isdigit():
                    idx = int(part)
                    nxt.append(value[idx] if idx < len(value) else _MISSING)
                else:
                    nxt.extend(item.get(part, _MISSING) for item in value if isinstance(item, dict))
            else:
                nxt.append(_MISSING)
        values = nxt
    return values or [_MISSING]


def _compare(value, op, arg):
    if op == "$ne":
        return not _compare(value, "$eq", arg)
    if op == "$eq":
        if arg is None:
            return value is _MISSING or value is None
        if isinstance(value, list):
            return arg in value or value == arg
        return value is not _MISSING and value == arg
    if value is _MISSING or value is None:
        return False
    if op == "$lt":
        return value < arg
    if op == "$lte":
        return value <= arg
    if op == "$gt":
        return value > arg
    if op == "$gte":
        return value >= arg
    if op == "$in":
        return value in arg
    raise NotImplementedError(op)


def _matches(doc, query):
    for key, cond in query.items():
        if key == "$or":
            if not any(_matches(doc, sub) for sub in cond):
                return False
            continue
        values = _candidates(doc, key)
        if isinstance(cond, dict) and cond and all(k.startswith("$") for k in cond):
            if "$ne" in cond:
                # $ne holds only when no candidate equals the argument
                if any(_compare(v, "$eq", cond["$ne"]) for v in values):
                    return False
                rest = {k: v for k, v in cond.items() if k != "$ne"}
                if rest and not any(all(_compare(v, op, arg) for op, arg in rest.items()) for v in values):
                    return False
                continue
            if not any(all(_compare(v, op, arg) for op, arg in cond.items()) for v in values):
                return False
        elif not any(_compare(v, "$eq", cond) for v in values):
            return False
    return True


def _positional_index(doc, query, array):
    for key, cond in query.items():
        if key.startswith(array + "."):
            sub = key[len(array) + 1:]
            for i, item in enumerate(doc.get(array) or []):
                if _matches(item, {sub: cond}):
                    return i
    return None


def _set_path(doc, path, value):
    parts = path.split(".")
    target = doc
    for part in parts[:-1]:
        if isinstance(target, list):
            target = target[int(part)]
            continue
        if not isinstance(target.get(part), (dict, list)):
            target[part] = {}
        target = target[part]
    if isinstance(target, list):
        target[int(parts[-1])] = value
    else:
        target[parts[-1]] = value


def _get_path(doc, path, default=None):
    target = doc
    for part in path.split("."):
        if isinstance(target, list):
            target = target[int(part)]
        elif isinstance(target, dict) and part in target:
            target = target[part]
        else:
            return default
    return target


def _unset_path(doc, path):
    parts = path.split(".")
    target = _get_path(doc, ".".join(parts[:-1])) if len(parts) > 1 else doc
    if isinstance(target, dict):
        target.pop(parts[-1], None)


async def _round_trip():
    await asyncio.sleep(0)


class _Result:
    def __init__(self, matched_count=0, modified_count=0, deleted_count=0, inserted_id=None, upserted_id=None):
        self.matched_count = matched_count
        self.modified_count = modified_count
        self.deleted_count = deleted_count
        self.inserted_id = inserted_id
        self.upserted_id = upserted_id


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs

    def sort(self, key, direction=1):
        self._docs.sort(
            key=lambda d: (d.get(key) is None, d.get(key) if d.get(key) is not None else 0),
            reverse=direction < 0,
        )
        return self

    def skip(self, n):
        self._docs = self._docs[n:]
        return self

    def limit(self, n):
        if n:
            self._docs = self._docs[:n]
        return self

    def __aiter__(self):
        self._iter = iter(self._docs)
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration

    async def to_list(self, length=None):
        await _round_trip()
        return list(self._docs[:length] if length else self._docs)


class FakeCollection:
    def __init__(self, name):
        self.name = name
        self.docs = []
        self.unique_keys = []
        self.indexes = []

    # indexes
    async def create_index(self, keys, unique=False, **kwargs):
        await _round_trip()
        fields = tuple(k for k, _ in keys)
        self.indexes.append((fields, unique, kwargs))
        if unique:
            self.unique_keys.append(fields)
        return "_".join(fields)

    def _check_unique(self, candidate, ignore=None):
        for fields in self.unique_keys:
            key = tuple(candidate.get(f) for f in fields)
            for other in self.docs:
                if other is ignore:
                    continue
                if tuple(other.get(f) for f in fields) == key:
                    raise DuplicateKeyError(f"E11000 duplicate key on {self.name} {fields}")

    # writes
    async def insert_one(self, doc):
        await _round_trip()
        doc = copy.deepcopy(doc)
        doc.setdefault("_id", ObjectId())
        self._check_unique(doc)
        self.docs.append(doc)
        return _Result(inserted_id=doc["_id"])

    def _apply(self, doc, query, update, inserting=False):
        for op, fields in update.items():
            for path, value in fields.items():
                if "$" in path.split("."):
                    array = path.split(".$")[0]
                    idx = _positional_index(doc, query, array)
                    path = path.replace(".$", f".{idx}", 1)
                if op == "$set":
                    _set_path(doc, path, copy.deepcopy(value))
                elif op == "$setOnInsert":
                    if inserting:
                        _set_path(doc, path, copy.deepcopy(value))
                elif op == "$unset":
                    _unset_path(doc, path)
                elif op == "$inc":
                    _set_path(doc, path, (_get_path(doc, path) or 0) + value)
                elif op == "$push":
                    current = _get_path(doc, path)
                    if current is None:
                        current = []
                        _set_path(doc, path, current)
                    current.append(copy.deepcopy(value))
                elif op == "$pull":
                    current = _get_path(doc, path) or []
                    if isinstance(value, dict):
                        kept = [item for item in current if not _matches(item, value)]
                    else:
                        kept = [item for item in current if item != value]
                    _set_path(doc, path, kept)
                else:
                    raise NotImplementedError(op)

    def _upsert_doc(self, query, update):
        doc = {k: copy.deepcopy(v) for k, v in query.items() if not k.startswith("$") and not isinstance(v, dict)}
        doc.setdefault("_id", ObjectId())
        self._apply(doc, query, update, inserting=True)
        self._check_unique(doc)
        self.docs.append(doc)
        return doc

    async def update_one(self, query, update, upsert=False):
        await _round_trip()
        for doc in self.docs:
            if _matches(doc, query):
                before = copy.deepcopy(doc)
                self._apply(doc, query, update)
                return _Result(matched_count=1, modified_count=int(before != doc))
        if upsert:
            doc = self._upsert_doc(query, update)
            return _Result(upserted_id=doc["_id"])
        return _Result()

    async def update_many(self, query, update):
        await _round_trip()
        matched = modified = 0
        for doc in self.docs:
            if _matches(doc, query):
                matched += 1
                before = copy.deepcopy(doc)
                self._apply(doc, query, update)
                modified += int(before != doc)
        return _Result(matched_count=matched, modified_count=modified)

    async def find_one_and_update(self, query, update, upsert=False, return_document=ReturnDocument.BEFORE):
        await _round_trip()
        for doc in self.docs:
            if _matches(doc, query):
                before = copy.deepcopy(doc)
                self._apply(doc, query, update)
                return copy.deepcopy(doc) if return_document == ReturnDocument.AFTER else before
        if upsert:
            doc = self._upsert_doc(query, update)
            return copy.deepcopy(doc) if return_document == ReturnDocument.AFTER else None
        return None

    async def delete_one(self, query):
        await _round_trip()
        for i, doc in enumerate(self.docs):
            if _matches(doc, query):
                del self.docs[i]
                return _Result(deleted_count=1)
        return _Result()

    async def delete_many(self, query):
        await _round_trip()
        before = len(self.docs)
        self.docs = [d for d in self.docs if not _matches(d, query)]
        return _Result(deleted_count=before - len(self.docs))

    # reads
    async def find_one(self, query=None, projection=None):
        await _round_trip()
        for doc in self.docs:
            if _matches(doc, query or {}):
                return self._project(doc, projection)
        return None

    def find(self, query=None, projection=None):
        return FakeCursor([self._project(d, projection) for d in self.docs if _matches(d, query or {})])

    async def count_documents(self, query, limit=0):
        await _round_trip()
        n = sum(1 for d in self.docs if _matches(d, query))
        return min(n, limit) if limit else n

    @staticmethod
    def _project(doc, projection):
        doc = copy.deepcopy(doc)
        if not projection:
            return doc
        keep = {k for k, v in projection.items() if v} | {"_id"}
        return {k: v for k, v in doc.items() if k in keep}


class FakeDatabase:
    def __init__(self, name):
        self.name = name
        self._collections = {}

    def __getitem__(self, name):
        if name not in self._collections:
            self._collections[name] = FakeCollection(name)
        return self._collections[name]


class FakeMongoClient:
    def __init__(self):
        self._dbs = {}

    def __getitem__(self, name):
        if name not in self._dbs:
            self._dbs[name] = FakeDatabase(name)
        return self._dbs[name]

    def close(self):
        pass


# ---------------------------------------------------------------------------
# collaborators
# ---------------------------------------------------------------------------

class FakeClock:
    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakeMailer:
    """Records outgoing mail; set `fail_with` to make `send` raise."""

    def __init__(self):
        self.sent = []
        self.fail_with = None

    async def send(self, to, subject, html, text=None):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})
        return f"<msg-{len(self.sent)}@test>"

    def last_otp(self, to=None):
        for msg in reversed(self.sent):
            if to is None or msg["to"] == to:
                found = re.search(r"\b(\d{6})\b", msg["text"] or msg["html"])
                if found:
                    return found.group(1)
        return None


class FakeStorage:
    def __init__(self):
        self.objects = {}
        self.deleted = []
        self.fail_uploads = False

    async def upload(self, data, name, folder, mime_type):
        if self.fail_uploads:
            raise StorageError("upload refused")
        key = f"{folder.strip('/')}/{safe_name(name)}"
        self.objects[key] = {"data": bytes(data), "mime_type": mime_type}
        return StoredObject(id=key, url=f"https://files.test/{key}", size=len(data))

    async def delete(self, object_id):
        self.deleted.append(object_id)
        self.objects.pop(object_id, None)


# ---------------------------------------------------------------------------
# fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        APP_ENV="test",
        FRONTEND_URL="http://frontend.test",
        JWT_SECRET="test-access-secret",
        JWT_REFRESH_SECRET="test-refresh-secret",
        BCRYPT_ROUNDS=4,
        GOOGLE_CLIENT_ID="google-client-id",
        GOOGLE_CLIENT_SECRET="google-client-secret",
        GOOGLE_CALLBACK_URL="http://api.test/api/oauth/google/callback",
        LOCAL_UPLOAD_DIR="unused",
    )


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc))


async def _memory_db(monkeypatch):
    monkeypatch.setattr(mongo, "_mongo_client", FakeMongoClient())
    database = mongo.get_db()
    await mongo.ensure_indexes(database)
    return database


@asynccontextmanager
async def _server_db(monkeypatch):
    """A throwaway database on a real MongoDB server; skips when none answers."""
    uri = os.environ.get("TEST_MONGODB_URI", "mongodb://localhost:27017")
    client = AsyncIOMotorClient(uri, tz_aware=True, serverSelectionTimeoutMS=1000)
    try:
        await client.admin.command("ping")
    except PyMongoError as exc:
        client.close()
        pytest.skip(f"MongoDB not reachable at {uri}: {exc}")

    name = f"lifemate_test_{uuid.uuid4().hex[:12]}"
    monkeypatch.setattr(mongo, "_mongo_client", client)
    monkeypatch.setattr(mongo, "settings", mongo.settings.model_copy(update={"MONGODB_DB": name}))
    database = mongo.get_db()
    await mongo.ensure_indexes(database)
    try:
        yield database
    finally:
        await client.drop_database(name)
        client.close()


@pytest.fixture
async def db(monkeypatch):
    return await _memory_db(monkeypatch)


@pytest.fixture
async def mongo_db(monkeypatch):
    async with _server_db(monkeypatch) as database:
        yield database


@pytest.fixture(params=["memory", "mongo"])
async def any_db(request, monkeypatch):
    """Runs the test against the in-memory store and, when reachable, a real server."""
    if request.param == "memory":
        yield await _memory_db(monkeypatch)
        return
    async with _server_db(monkeypatch) as database:
        yield database


@pytest.fixture
def live_clock():
    """Wall-clock start, millisecond precision like BSON dates, so TTL indexes leave records alone."""
    now = datetime.now(timezone.utc)
    return FakeClock(now.replace(microsecond=now.microsecond // 1000 * 1000))


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def issuer(settings, clock):
    return TokenIssuer(settings, clock=clock)


@pytest.fixture
def hasher(settings):
    return PasswordHasher.from_settings(settings)


@pytest.fixture
def fixed_otp(monkeypatch):
    """Every issued OTP is 123456."""
    monkeypatch.setattr("lifemate.services.otp.generate_code", lambda: "123456")
    return "123456"


@pytest.fixture
def auth_service(db, settings, mailer, issuer, hasher, clock):
    from lifemate.services.auth import AuthService
    from lifemate.services.otp import OtpService

    return AuthService(settings, mailer, OtpService(settings, mailer, clock=clock), issuer, hasher, clock=clock)


@pytest.fixture
async def client(db, settings, mailer, storage, clock):
    from lifemate.api import deps
    from lifemate.main import app

    app.dependency_overrides[deps.get_settings] = lambda: settings
    app.dependency_overrides[deps.get_clock] = lambda: clock
    app.dependency_overrides[deps.get_mailer] = lambda: mailer
    app.dependency_overrides[deps.get_storage] = lambda: storage
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
    app.dependency_overrides.clear()
