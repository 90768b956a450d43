from __future__ import annotations

import logging
import os
import tempfile
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, List, Optional

from strategist.backend import constants
from strategist.backend.errors import ServiceError
from strategist.backend.services.file_extraction import UploadedFile


_COPY_CHUNK_BYTES = 1024 * 1024

_log = logging.getLogger(__name__)


def _copy_limited(source: Any, target: Any, filename: str) -> int:
	written = 0
	while True:
		chunk = source.read(_COPY_CHUNK_BYTES)
		if not chunk:
			return written
		written += len(chunk)
		if written > constants.MAX_UPLOAD_BYTES:
			raise ServiceError(
				status_code=413,
				code="upload_too_large",
				message=(
					f"Upload '{filename}' exceeds the "
					f"{constants.MAX_UPLOAD_BYTES // (1024 * 1024)} MB limit."
				),
			)
		target.write(chunk)


def _remove(paths: Iterable[str], log: logging.LoggerAdapter | logging.Logger) -> int:
	removed = 0
	for path in paths:
		try:
			if os.path.exists(path):
				os.unlink(path)
				removed += 1
		except OSError:
			log.error("Error cleaning up staged upload %s", path, exc_info=True)
	return removed


@contextmanager
def staged_uploads(
	uploads: Iterable[Any],
	logger: Optional[logging.LoggerAdapter | logging.Logger] = None,
) -> Iterator[List[UploadedFile]]:
	"""Spool request uploads to temp files, removing them on every exit path."""
	log = logger or _log
	staged: List[UploadedFile] = []
	paths: List[str] = []
	try:
		for upload in uploads:
			if upload is None:
				continue
			filename = getattr(upload, "filename", None) or "upload"
			suffix = os.path.splitext(filename)[1]
			handle = tempfile.NamedTemporaryFile(prefix="strategy-upload-", suffix=suffix, delete=False)
			paths.append(handle.name)
			with handle:
				size = _copy_limited(upload.file, handle, filename)
			staged.append(
				UploadedFile(
					filename=filename,
					size=size,
					path=handle.name,
					content_type=getattr(upload, "content_type", None),
				)
			)
		yield staged
	finally:
		removed = _remove(paths, log)
		log.debug("Staged upload cleanup complete: %d removed", removed)
