import copy
import itertools
import os
import uuid
from datetime import datetime, timedelta, timezone

# The Couchbase client validates its settings at import time
os.environ.setdefault("COUCHBASE_USERNAME", "test")
os.environ.setdefault("COUCHBASE_PASSWORD", "test")
os.environ.setdefault("COUCHBASE_HOST", "localhost")
os.environ.setdefault("COUCHBASE_BUCKET", "main")
os.environ.setdefault("COUCHBASE_PROTOCOL", "couchbase")
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret")
os.environ.setdefault("AUCTION_STATUS_SWEEP_SECONDS", "0")

import pytest
from couchbase.exceptions import (
    CASMismatchException,
    DocumentExistsException,
    DocumentNotFoundException,
)
from jose import jwt

from clients.couchbase import Keyspace
from models.entities.couchbase.auctions import Auction, AuctionData, AuctionImage


class FakeResult:
    def __init__(self, content=None, cas=0):
        self.content_as = {dict: copy.deepcopy(content)}
        self.cas = cas


class FakeCollection:
    """In-memory stand-in for a Couchbase collection with CAS semantics."""

    def __init__(self):
        self.docs = {}
        self.replace_calls = 0
        # Awaited with the key before every replace; lets tests interleave writers
        self.before_replace = None
        self._cas = itertools.count(1)

    async def get(self, key, *opts, **kwargs):
        if key not in self.docs:
            raise DocumentNotFoundException()
        doc, cas = self.docs[key]
        return FakeResult(doc, cas)

    async def insert(self, key, value, *opts, **kwargs):
        if key in self.docs:
            raise DocumentExistsException()
        cas = next(self._cas)
        self.docs[key] = (copy.deepcopy(value), cas)
        return FakeResult(cas=cas)

    async def replace(self, key, value, *opts, **kwargs):
        self.replace_calls += 1
        if self.before_replace is not None:
            await self.before_replace(key)
        if key not in self.docs:
            raise DocumentNotFoundException()
        expected = kwargs.get("cas")
        for opt in opts:
            if hasattr(opt, "get") and opt.get("cas"):
                expected = opt.get("cas")
        if expected and expected != self.docs[key][1]:
            raise CASMismatchException()
        cas = next(self._cas)
        self.docs[key] = (copy.deepcopy(value), cas)
        return FakeResult(cas=cas)

    def put(self, key, value):
        self.docs[key] = (copy.deepcopy(value), next(self._cas))

    def doc(self, key):
        return self.docs[key][0]

    def bump(self, key, **changes):
        """Simulate a concurrent writer: change fields and issue a new CAS."""
        doc, _ = self.docs[key]
        doc = copy.deepcopy(doc)
        doc.update(changes)
        self.docs[key] = (doc, next(self._cas))


@pytest.fixture
def store(monkeypatch):
    collections = {}

    async def get_collection(self):
        return collections.setdefault(self.collection_name, FakeCollection())

    monkeypatch.setattr(Keyspace, "get_collection", get_collection)
    return collections


@pytest.fixture
def auctions(store):
    return store.setdefault("auctions", FakeCollection())


@pytest.fixture
def users(store):
    return store.setdefault("users", FakeCollection())


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def make_auction(auctions, now):
    """Insert an auction document directly, bypassing create-time validation."""

    def _make(
        start_offset=timedelta(hours=-1),
        end_offset=timedelta(hours=1),
        status="live",
        start_price=100.0,
        seller_id="seller-1",
        reserve_price=None,
        bids=None,
    ):
        data = AuctionData(
            seller_id=seller_id,
            title="Vintage camera",
            description="Working rangefinder",
            category="electronics",
            condition="used",
            images=[AuctionImage(url="https://img/1.jpg", storage_path="auctions/1.jpg", is_primary=True)],
            start_price=start_price,
            current_price=start_price,
            reserve_price=reserve_price,
            start_time=now + start_offset,
            end_time=now + end_offset,
            status=status,
            bids=bids or [],
        )
        data.created_at = data.updated_at = now
        key = str(uuid.uuid4())
        auctions.put(key, Auction.model_dump_with_excluded_attributes(data))
        return key

    return _make


def token_for(sub, role="buyer", name=None, email=None):
    claims = {"sub": sub, "role": role, "name": name or sub, "email": email or f"{sub}@example.com"}
    return jwt.encode(claims, os.environ["AUTH_JWT_SECRET"], algorithm="HS256")


def auth_header(sub, role="buyer", name=None):
    return {"Authorization": f"Bearer {token_for(sub, role, name)}"}


@pytest.fixture
def app(store):
    import conf
    import main
    from utils.auth import AuthClient

    main.app.state.auth_client = AuthClient(conf.get_auth_config())
    return main.app


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app)


@pytest.fixture
def headers():
    return auth_header
