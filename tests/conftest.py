"""Shared fixtures: an in-memory gateway, services, and a wired TestClient."""
import asyncio
import copy
import itertools
from collections import defaultdict
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from training_eval.auth import AuthGateway, PasswordHasher
from training_eval.catalog import build_catalog
from training_eval.db import CREATED_COLUMNS, REFERENCES, Gateway, GatewayError
from training_eval.deps import get_auth, get_gateway
from training_eval.main import app
from training_eval.services import EvaluationService, SessionService

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin123"


class InMemoryGateway(Gateway):
    """Dict-backed gateway with the same stamping, reference and cascade rules as MongoGateway."""

    def __init__(self):
        self.tables = defaultdict(dict)
        self._ids = itertools.count(1)
        self._clock = itertools.count()
        self.started = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _now(self):
        return self.started + timedelta(seconds=next(self._clock))

    def _check_reference(self, table, row):
        if table not in REFERENCES:
            return
        column, parent, _ = REFERENCES[table]
        if column in row and row[column] not in self.tables[parent]:
            raise GatewayError(f'insert or update on table "{table}" violates foreign key constraint on "{column}"')

    async def insert(self, table, record):
        row = copy.deepcopy(record)
        row.pop("id", None)
        self._check_reference(table, row)
        column = CREATED_COLUMNS.get(table)
        if column:
            row[column] = self._now()
        row["id"] = f"{next(self._ids):024x}"
        self.tables[table][row["id"]] = row
        return copy.deepcopy(row)

    async def select(self, table, filters=None, join=None, order=None):
        rows = [
            copy.deepcopy(r) for r in self.tables[table].values()
            if all(r.get(k) == v for k, v in (filters or {}).items())
        ]
        if order:
            key, direction = order
            rows.sort(key=lambda r: r[key], reverse=direction < 0)
        if join:
            column, parent, attach_as = REFERENCES[table]
            for r in rows:
                r[attach_as] = copy.deepcopy(self.tables[parent].get(r[column]))
        return rows

    async def select_one(self, table, filters):
        rows = await self.select(table, filters)
        return rows[0] if rows else None

    async def update(self, table, id, fields):
        if id not in self.tables[table]:
            return None
        self._check_reference(table, fields)
        self.tables[table][id].update(copy.deepcopy(fields))
        return copy.deepcopy(self.tables[table][id])

    async def delete(self, table, id):
        for child, (column, parent, _) in REFERENCES.items():
            if parent == table:
                for child_id in [k for k, r in self.tables[child].items() if r.get(column) == id]:
                    del self.tables[child][child_id]
        return self.tables[table].pop(id, None) is not None


@pytest.fixture
def catalog():
    return build_catalog("split")


@pytest.fixture
def gateway():
    return InMemoryGateway()


@pytest.fixture
def session_service(gateway):
    return SessionService(gateway)


@pytest.fixture
def evaluation_service(gateway):
    return EvaluationService(gateway)


@pytest.fixture
def auth(gateway):
    return AuthGateway(gateway, hasher=PasswordHasher(rounds=4))


@pytest.fixture
def client(gateway, auth):
    asyncio.run(auth.create_admin(ADMIN_EMAIL, ADMIN_PASSWORD))
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_auth] = lambda: auth
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_client(client):
    response = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return client
