import logging
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

API_VERSION = "7.1-preview.1"
EXTENSION_MANAGEMENT_AREA_ID = "6c2b0933-3600-42ae-bf8b-93d4f7e83594"


class DocumentStoreError(Exception):
    """Raised when the document store rejects a request."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class DocumentConflictError(DocumentStoreError):
    """Raised when a document was modified since it was read."""


@dataclass
class RevisionDocument:
    """One product's revision counters, keyed by encoded revision key."""

    id: str
    etag: Optional[int] = None
    revisions: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data):
        revisions = {}
        for key, value in data.items():
            if key == "id" or key.startswith("__"):
                continue
            revisions[key] = int(value)
        return cls(id=data.get("id"), etag=data.get("__etag"), revisions=revisions)

    def to_json(self):
        data = {"id": self.id}
        if self.etag is not None:
            data["__etag"] = self.etag
        data.update(self.revisions)
        return data


class DocumentStore:
    """
    Thin client for the Azure DevOps extension data service.

    Documents live in a single collection scoped to a publisher/extension
    and a scope type/value. Updates are optimistic: the store rejects a
    write whose ``__etag`` no longer matches the stored document.
    """

    def __init__(self, collection_url, token, publisher="csdahlberg", extension="versioning",
                 scope_type="Default", scope_value="Current", collection="Revisions",
                 session=None, timeout=30):
        self.collection_url = collection_url.rstrip("/")
        self.publisher = publisher
        self.extension = extension
        self.scope_type = scope_type
        self.scope_value = scope_value
        self.collection = collection
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = ("", token)
        self.session.headers.update({"Accept": "application/json"})
        self._location_url = None

    def _resolve_location(self):
        """Find the ExtensionManagement host for this collection"""
        if self._location_url:
            return self._location_url

        url = f"{self.collection_url}/_apis/resourceAreas/{EXTENSION_MANAGEMENT_AREA_ID}"
        response = self.session.get(url, params={"api-version": API_VERSION}, timeout=self.timeout)
        if response.status_code == 404:
            logger.debug(f"No ExtensionManagement resource area registered, using {self.collection_url}")
            self._location_url = self.collection_url
        else:
            self._raise_for_status(response)
            self._location_url = response.json()["locationUrl"].rstrip("/")
            logger.debug(f"Resolved ExtensionManagement location to {self._location_url}")
        return self._location_url

    def _documents_url(self):
        parts = [
            "_apis/ExtensionManagement/InstalledExtensions",
            quote(self.publisher, safe=""),
            quote(self.extension, safe=""),
            "Data/Scopes",
            quote(self.scope_type, safe=""),
            quote(self.scope_value, safe=""),
            "Collections",
            quote(self.collection, safe=""),
            "Documents",
        ]
        return f"{self._resolve_location()}/" + "/".join(parts)

    def _raise_for_status(self, response):
        if response.ok:
            return
        message = f"Document store returned {response.status_code} for {response.request.method} {response.url}: {response.text}"
        if response.status_code in (409, 412):
            raise DocumentConflictError(message, response.status_code)
        raise DocumentStoreError(message, response.status_code)

    def get(self, document_id):
        url = f"{self._documents_url()}/{quote(document_id, safe='')}"
        response = self.session.get(url, params={"api-version": API_VERSION}, timeout=self.timeout)
        if response.status_code == 404:
            return None
        self._raise_for_status(response)
        return RevisionDocument.from_json(response.json())

    def create(self, document):
        response = self.session.post(
            self._documents_url(),
            params={"api-version": API_VERSION},
            json=document.to_json(),
            timeout=self.timeout,
        )
        self._raise_for_status(response)
        return RevisionDocument.from_json(response.json())

    def update(self, document):
        response = self.session.patch(
            self._documents_url(),
            params={"api-version": API_VERSION},
            json=document.to_json(),
            timeout=self.timeout,
        )
        self._raise_for_status(response)
        return RevisionDocument.from_json(response.json())
