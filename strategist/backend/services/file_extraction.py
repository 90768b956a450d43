from __future__ import annotations

import base64
import csv
import io
import logging
import os
import re
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Literal, Optional

from strategist.backend import constants


ExtractedKind = Literal["text", "image", "document", "error"]

_LABEL_RE = re.compile(r"[^A-Z0-9]")
_PDF_MIME_TYPE = "application/pdf"

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadedFile:
	filename: str
	size: int
	path: str
	content_type: str | None = None

	@property
	def extension(self) -> str:
		_, _, ext = self.filename.rpartition(".")
		return ext.lower() if "." in self.filename else ""


@dataclass(frozen=True)
class ExtractedFile:
	filename: str
	kind: ExtractedKind
	content: str | None = None
	data: str | None = None
	mime_type: str | None = None
	error: str | None = None

	def as_dict(self) -> Dict[str, Any]:
		payload: Dict[str, Any] = {"filename": self.filename, "kind": self.kind}
		if self.content is not None:
			payload["content"] = self.content
		if self.data is not None:
			payload["data"] = self.data
		if self.mime_type is not None:
			payload["mimeType"] = self.mime_type
		if self.error is not None:
			payload["error"] = self.error
		return payload


def sanitize_label(filename: str | None) -> str:
	return _LABEL_RE.sub("_", (filename or "FILE").upper())


def _read_base64(path: str) -> str:
	return base64.b64encode(Path(path).read_bytes()).decode("ascii")


def _pdf_text(path: str) -> str:
	from pypdf import PdfReader

	reader = PdfReader(path)
	return "\n".join(page.extract_text() or "" for page in reader.pages)


def _docx_text(path: str) -> str:
	from docx import Document

	document = Document(path)
	lines = [paragraph.text for paragraph in document.paragraphs]
	for table in document.tables:
		for row in table.rows:
			lines.append("\t".join(cell.text for cell in row.cells))
	return "\n".join(lines)


def _write_csv(rows: Iterable[Iterable[Any]]) -> str:
	buffer = io.StringIO()
	writer = csv.writer(buffer, lineterminator="\n")
	for row in rows:
		writer.writerow(["" if cell is None else cell for cell in row])
	return buffer.getvalue()


def _spreadsheet_csv(path: str) -> str:
	from openpyxl import load_workbook

	# A file handle skips openpyxl's extension check, so .xls names holding OOXML still load.
	with open(path, "rb") as handle:
		workbook = load_workbook(handle, read_only=True, data_only=True)
		try:
			return _write_csv(workbook.worksheets[0].iter_rows(values_only=True))
		finally:
			workbook.close()


def _xls_cell(value: Any) -> Any:
	if isinstance(value, float) and value.is_integer():
		return int(value)
	return value


def _legacy_spreadsheet_csv(path: str) -> str:
	if zipfile.is_zipfile(path):
		return _spreadsheet_csv(path)

	import xlrd

	book = xlrd.open_workbook(path, on_demand=True)
	try:
		sheet = book.sheet_by_index(0)
		return _write_csv(
			[_xls_cell(value) for value in sheet.row_values(index)] for index in range(sheet.nrows)
		)
	finally:
		book.release_resources()


def _plain_text(path: str) -> str:
	return Path(path).read_text(encoding="utf-8")


_TEXT_EXTRACTORS: Dict[str, Callable[[str], str]] = {
	"docx": _docx_text,
	"xlsx": _spreadsheet_csv,
	"xls": _legacy_spreadsheet_csv,
	**{ext: _plain_text for ext in constants.TEXT_EXTENSIONS},
}


def _qualifies_for_direct_pdf(path: str) -> bool:
	try:
		return os.path.getsize(path) < constants.PDF_DIRECT_LIMIT_BYTES
	except OSError:
		return False


def extract_file(upload: UploadedFile, logger: Optional[logging.LoggerAdapter | logging.Logger] = None) -> Optional[ExtractedFile]:
	"""Route one upload by extension. Returns None for unsupported types."""
	log = logger or _log
	filename = upload.filename
	ext = upload.extension
	try:
		if not upload.path:
			raise ValueError("Missing temporary filepath for uploaded file")

		if ext == "pdf":
			if _qualifies_for_direct_pdf(upload.path):
				log.debug("PDF qualifies for direct submission: %s (%s bytes)", filename, upload.size)
				return ExtractedFile(
					filename=filename,
					kind="document",
					data=_read_base64(upload.path),
					mime_type=_PDF_MIME_TYPE,
				)
			text = _pdf_text(upload.path)
			log.debug("PDF parsed server-side: %s (%d chars)", filename, len(text))
			return ExtractedFile(filename=filename, kind="text", content=text)

		if ext in constants.IMAGE_MIME_TYPES:
			mime_type = constants.IMAGE_MIME_TYPES[ext]
			log.debug("Image prepared for direct submission: %s (%s)", filename, mime_type)
			return ExtractedFile(
				filename=filename,
				kind="image",
				data=_read_base64(upload.path),
				mime_type=mime_type,
			)

		extractor = _TEXT_EXTRACTORS.get(ext)
		if extractor is None:
			log.warning("Unsupported file type encountered: %s (ext=%r)", filename, ext)
			return None
		text = extractor(upload.path)
		log.debug("Parsed %s as %s text (%d chars)", filename, ext, len(text))
		return ExtractedFile(filename=filename, kind="text", content=text)
	except Exception as exc:
		log.exception("Error parsing file %s", filename)
		return ExtractedFile(
			filename=filename,
			kind="error",
			error=str(exc) or "Unknown error parsing upload",
		)


def extract_files(
	uploads: Iterable[UploadedFile],
	logger: Optional[logging.LoggerAdapter | logging.Logger] = None,
) -> List[ExtractedFile]:
	results: List[ExtractedFile] = []
	for upload in uploads:
		if upload is None:
			continue
		extracted = extract_file(upload, logger)
		if extracted is not None:
			results.append(extracted)
	return results
