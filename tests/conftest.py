from __future__ import annotations

import os
import tempfile
from uuid import uuid4

import pytest

_tmpdir = tempfile.mkdtemp()
os.environ.setdefault("SWIFT_INVOICE_DATABASE_URL", f"sqlite:///{_tmpdir}/test.db")
os.environ.setdefault("SWIFT_INVOICE_SECRETS_PATH", f"{_tmpdir}/secrets")
os.environ.setdefault("SWIFT_INVOICE_PASSWORD_HASH_ROUNDS", "4")
os.environ.setdefault("SWIFT_INVOICE_RETURN_RESET_TOKENS", "true")

from swift_invoice.config import get_settings  # noqa: E402
from swift_invoice.context import build_context  # noqa: E402
from swift_invoice.db import init_db  # noqa: E402
from swift_invoice.interfaces.documents import MemoryDocumentStore  # noqa: E402
from swift_invoice.interfaces.sql_store import SqlDocumentStore  # noqa: E402

get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def database():
    init_db()


@pytest.fixture(params=["memory", "sql"])
def store(request, database):
    if request.param == "memory":
        return MemoryDocumentStore(max_attempts=50)
    return SqlDocumentStore(max_attempts=50)


@pytest.fixture
def ctx(settings, database):
    return build_context(settings, store=MemoryDocumentStore())


@pytest.fixture
def owner_uid():
    return uuid4().hex
