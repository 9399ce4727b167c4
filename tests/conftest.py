"""
Shared fixtures for versionstamp tests.
"""

import copy

import pytest

from versionstamp.store import DocumentConflictError, RevisionDocument
from versionstamp.version import ComposedVersion


class FakeDocumentStore:
    """
    In-memory stand-in for the extension data service.

    Mirrors its optimistic concurrency: every write bumps the etag and an
    update carrying a stale etag is rejected. ``fail_next`` queues
    exceptions raised by the next calls to any operation.
    """

    def __init__(self):
        self.documents = {}
        self.fail_next = []
        self.calls = []

    def _maybe_fail(self, operation):
        self.calls.append(operation)
        if self.fail_next:
            raise self.fail_next.pop(0)

    def get(self, document_id):
        self._maybe_fail("get")
        stored = self.documents.get(document_id)
        return copy.deepcopy(stored) if stored else None

    def create(self, document):
        self._maybe_fail("create")
        if document.id in self.documents:
            raise DocumentConflictError("exists", 409)
        stored = RevisionDocument(document.id, 1, dict(document.revisions))
        self.documents[document.id] = stored
        return copy.deepcopy(stored)

    def update(self, document):
        self._maybe_fail("update")
        stored = self.documents.get(document.id)
        if stored is None or stored.etag != document.etag:
            raise DocumentConflictError("stale", 409)
        stored = RevisionDocument(document.id, stored.etag + 1, dict(document.revisions))
        self.documents[document.id] = stored
        return copy.deepcopy(stored)

    @property
    def writes(self):
        return [call for call in self.calls if call in ("create", "update")]


@pytest.fixture
def fake_store():
    return FakeDocumentStore()


@pytest.fixture
def prerelease_version():
    return ComposedVersion(
        assembly_version="1.2.3.0",
        assembly_file_version="1.2.19000.5",
        assembly_informational_version="1.2.3-beta04",
        suffix="beta04",
    )


@pytest.fixture
def release_version():
    return ComposedVersion(
        assembly_version="1.2.3.0",
        assembly_file_version="1.2.19000.5",
        assembly_informational_version="1.2.3",
        suffix=None,
    )
