"""
Persistence Gateway
===================
Stores a document's annotation collection outside the viewer.

    JsonFilePersistenceGateway   one JSON file per document on disk
    HttpPersistenceGateway       POSTs the snapshot to a remote service

Failures are always raised as PersistenceError, never swallowed.

Directory Layout (file gateway):
    storage/annotations/
    └── {document_id}.json
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Optional

import requests

from .errors import NotFoundError, PersistenceError
from .models import Annotation, AnnotationSnapshot

logger = logging.getLogger(__name__)


class PersistenceGateway(ABC):
    """Opaque save boundary for annotation collections."""

    def save(self, document_id: str, annotations: Iterable[Annotation]) -> AnnotationSnapshot:
        """
        Persist the annotations of `document_id`.

        Raises:
            PersistenceError: the store rejected or could not be reached.
        """
        snapshot = AnnotationSnapshot(
            document_id=document_id,
            annotations=[a.model_copy() for a in annotations],
        )
        self._store(snapshot)
        logger.info(
            f"Saved {snapshot.annotation_count} annotation(s) for document "
            f"{document_id[:12]} via {type(self).__name__}"
        )
        return snapshot

    @abstractmethod
    def _store(self, snapshot: AnnotationSnapshot):
        ...


class JsonFilePersistenceGateway(PersistenceGateway):
    """Writes snapshots as JSON files, replacing atomically."""

    def __init__(self, storage_dir: str):
        self.storage_dir = Path(storage_dir)

    def path_for(self, document_id: str) -> Path:
        safe = "".join(c if c.isalnum() or c in "-_" else "_" for c in document_id)[:128]
        return self.storage_dir / f"{safe}.json"

    def _store(self, snapshot: AnnotationSnapshot):
        target = self.path_for(snapshot.document_id)
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.storage_dir, suffix=".tmp")
        except OSError as e:
            raise PersistenceError(f"Cannot write {target}: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot.model_dump(), f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, target)
        except OSError as e:
            raise PersistenceError(f"Cannot write {target}: {e}") from e
        finally:
            # Only present if the replace did not happen
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
        logger.debug(f"Wrote annotations: {target}")

    def load(self, document_id: str) -> AnnotationSnapshot:
        target = self.path_for(document_id)
        if not target.exists():
            raise NotFoundError(f"No saved annotations for document {document_id}")
        try:
            with open(target, "r", encoding="utf-8") as f:
                return AnnotationSnapshot.model_validate(json.load(f))
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Cannot read {target}: {e}") from e


class HttpPersistenceGateway(PersistenceGateway):
    """
    Sends snapshots to `{base_url}/annotations/{document_id}`.

    Any non-2xx response or transport error becomes PersistenceError.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        token: Optional[str] = None,
        http: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = http or requests.Session()
        if token:
            self.http.headers["Authorization"] = f"Bearer {token}"

    def _store(self, snapshot: AnnotationSnapshot):
        url = f"{self.base_url}/annotations/{snapshot.document_id}"
        try:
            resp = self.http.post(url, json=snapshot.model_dump(), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise PersistenceError(f"Annotation service unreachable: {e}") from e

        if not resp.ok:
            detail = resp.text[:500]
            raise PersistenceError(
                f"Annotation service returned {resp.status_code}: {detail}",
                status_code=resp.status_code,
            )
