"""Tests for scripts/audit_friend_edges.py on the in-memory store."""

import importlib.util
from pathlib import Path

import pytest

from avail.application import SetWrite
from avail.application import documents

SCRIPT = Path(__file__).resolve().parent.parent / "scripts" / "audit_friend_edges.py"


@pytest.fixture(scope="module")
def audit():
    spec = importlib.util.spec_from_file_location("audit_friend_edges", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _seed(store):
    store.commit(
        [
            SetWrite(documents.user_path("+12025550001"), {"name": "A"}),
            SetWrite(documents.user_path("+12025550002"), {"name": "B"}),
            SetWrite(documents.user_path("+12025550003"), {"name": "C"}),
            SetWrite(documents.friend_path("+12025550001", "+12025550002"), {}),
            SetWrite(documents.friend_path("+12025550002", "+12025550001"), {}),
            SetWrite(documents.friend_path("+12025550003", "+12025550001"), {}),
        ]
    )


def test_finds_one_sided_edges(audit, store):
    _seed(store)
    assert audit.find_one_sided_edges(store) == [("+12025550003", "+12025550001")]


def test_delete_orphans(audit, store):
    _seed(store)
    orphans = audit.find_one_sided_edges(store)
    assert audit.delete_orphans(store, orphans) == 1
    assert audit.find_one_sided_edges(store) == []
    assert store.get(documents.friend_path("+12025550001", "+12025550002")) is not None
