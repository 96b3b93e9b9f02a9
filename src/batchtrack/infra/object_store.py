"""Blob storage used by file-staged batch providers."""

from __future__ import annotations

import io
import logging
from collections.abc import Iterator
from typing import Protocol, runtime_checkable

from google import genai
from google.genai import errors, types

from batchtrack.exceptions import ProviderError

logger = logging.getLogger(__name__)


@runtime_checkable
class ObjectStore(Protocol):
    """Durable put/get of named blobs."""

    def put(self, name: str, data: bytes, mime_type: str = "jsonl") -> str:
        """Store ``data`` under ``name``. Returns the reference to read it back."""
        ...

    def get(self, ref: str) -> bytes: ...

    def iter_lines(self, ref: str) -> Iterator[bytes]:
        """Yield the blob at ``ref`` line by line, keeping line endings.

        Stores that can stream should do so; result files can be large.
        """
        ...


class GenaiFileStore:
    """ObjectStore on the Gemini Files API (``client.files``)."""

    def __init__(self, client: genai.Client) -> None:
        self._client = client

    def put(self, name: str, data: bytes, mime_type: str = "jsonl") -> str:
        try:
            uploaded = self._client.files.upload(
                file=io.BytesIO(data),
                config=types.UploadFileConfig(display_name=name, mime_type=mime_type),
            )
        except errors.APIError as e:
            raise ProviderError(f"Gemini file upload failed for {name}: {e}") from e
        logger.debug("Uploaded %s as %s (%d bytes)", name, uploaded.name, len(data))
        return uploaded.name

    def get(self, ref: str) -> bytes:
        try:
            data = self._client.files.download(file=ref)
        except errors.APIError as e:
            raise ProviderError(f"Gemini file download failed for {ref}: {e}") from e
        logger.debug("Downloaded %s (%d bytes)", ref, len(data))
        return data

    def iter_lines(self, ref: str) -> Iterator[bytes]:
        # files.download has no streaming mode: the body is fetched in one piece
        # and only the split into lines is lazy.
        yield from io.BytesIO(self.get(ref))
