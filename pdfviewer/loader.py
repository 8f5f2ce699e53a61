"""
Document Loader
===============
Opens a PDF from an HTTP(S) URL, a local path or an in-memory buffer.

    load(source_ref) → Document
        fetch (network / disk) → header check → fitz.open(stream=...)

Only the page count is decoded up front. The whole load is bounded by
`load_timeout`; a document that finishes opening after the deadline is
released immediately instead of leaking.
"""

from __future__ import annotations

import hashlib
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from pathlib import Path
from typing import Optional, Union

import fitz  # PyMuPDF
import requests

from .config import ViewerConfig, get_config
from .document import Document, PyMuPDFDocument
from .errors import LoadError, LoadFailure

logger = logging.getLogger(__name__)

# PDF files must carry their header within the first KiB
_HEADER_WINDOW = 1024

LoadSource = Union[str, Path, bytes, bytearray, memoryview]


def is_url(source) -> bool:
    return isinstance(source, str) and source.lower().startswith(("http://", "https://"))


class DocumentLoader:
    """
    Opens documents and hands ownership of them to the caller.

    Callers must `release()` the returned Document (or use it as a
    context manager) when done.
    """

    def __init__(self, config: Optional[ViewerConfig] = None, http: Optional[requests.Session] = None):
        self.config = config or get_config()
        self.http = http or requests.Session()

    def load(self, source_ref: LoadSource) -> Document:
        """
        Open a document.

        Raises:
            LoadError: fetch-failure, parse-failure or timeout.
        """
        start = time.time()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pdfviewer-load")
        future = executor.submit(self._load_blocking, source_ref)
        try:
            document = future.result(timeout=self.config.load_timeout)
        except FutureTimeout:
            future.add_done_callback(_release_late_result)
            logger.error(
                f"Load of {_describe(source_ref)} exceeded {self.config.load_timeout}s"
            )
            raise LoadError(
                f"Loading timed out after {self.config.load_timeout}s",
                LoadFailure.TIMEOUT,
            ) from None
        finally:
            executor.shutdown(wait=False)

        logger.info(
            f"Loaded {_describe(source_ref)}: {document.page_count} pages "
            f"in {time.time() - start:.2f}s"
        )
        return document

    # ─── Internals ────────────────────────────────────────────────────────

    def _load_blocking(self, source_ref: LoadSource) -> Document:
        data = self._read_source(source_ref)
        return self._open_bytes(data, source_ref)

    def _read_source(self, source_ref: LoadSource) -> bytes:
        if isinstance(source_ref, (bytes, bytearray, memoryview)):
            return bytes(source_ref)

        if is_url(source_ref):
            return self._fetch(source_ref)

        if isinstance(source_ref, (str, Path)):
            try:
                return Path(source_ref).read_bytes()
            except OSError as e:
                raise LoadError(
                    f"Cannot read {source_ref}: {e}", LoadFailure.FETCH_FAILURE
                ) from e

        raise LoadError(
            f"Unsupported source type: {type(source_ref).__name__}",
            LoadFailure.PARSE_FAILURE,
        )

    def _fetch(self, url: str) -> bytes:
        logger.debug(f"Fetching {url}")
        try:
            resp = self.http.get(url, timeout=self.config.fetch_timeout)
            resp.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise LoadError(
                f"Failed to fetch {url}: {e}", LoadFailure.FETCH_FAILURE
            ) from e
        return resp.content

    def _open_bytes(self, data: bytes, source_ref: LoadSource) -> Document:
        if b"%PDF-" not in data[:_HEADER_WINDOW]:
            raise LoadError("Source is not a PDF document", LoadFailure.PARSE_FAILURE)

        try:
            fitz_doc = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            raise LoadError(f"Cannot parse PDF: {e}", LoadFailure.PARSE_FAILURE) from e

        if fitz_doc.is_repaired:
            fitz_doc.close()
            raise LoadError(
                "PDF is truncated or damaged (cross-reference table had to be rebuilt)",
                LoadFailure.PARSE_FAILURE,
            )

        if fitz_doc.needs_pass:
            fitz_doc.close()
            raise LoadError("PDF is password protected", LoadFailure.PARSE_FAILURE)

        document_id = hashlib.sha256(data).hexdigest()
        ref = str(source_ref) if isinstance(source_ref, (str, Path)) else data
        return PyMuPDFDocument(fitz_doc, ref, document_id)


def _release_late_result(future):
    if future.cancelled() or future.exception() is not None:
        return
    document = future.result()
    logger.debug(f"Releasing late-arriving document {document.document_id[:12]}")
    document.release()


def _describe(source_ref: LoadSource) -> str:
    if isinstance(source_ref, (bytes, bytearray, memoryview)):
        return f"<{len(source_ref)} bytes>"
    return str(source_ref)
