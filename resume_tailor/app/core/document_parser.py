# resume_tailor/app/core/document_parser.py

import base64
import binascii
import json
from io import BytesIO
from typing import Any, Dict, List, Union

from bs4 import BeautifulSoup
from docx import Document
from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

from resume_tailor.app.core.errors import CorruptDocumentError, UnsupportedFormatError

SUPPORTED_FORMATS = ("text", "pdf", "docx", "html", "json")


def decode_resume_content(content: str, fmt: str) -> bytes:
    """
    Resume content arrives as a string: plain text for text-like formats,
    base64 or a `data:` URL for binary ones (pdf, docx).
    """
    if fmt in ("text", "html", "json") and not content.startswith("data:"):
        return content.encode("utf-8")
    payload = content.split(",", 1)[1] if content.startswith("data:") else content
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CorruptDocumentError(f"Resume content for format '{fmt}' is not valid base64") from exc


class DocumentParser:
    """Handles PDF, DOCX, HTML, JSON Resume and plain text extraction."""

    def parse(self, data: Union[bytes, str], fmt: str) -> str:
        fmt = (fmt or "text").lower()
        if isinstance(data, str):
            data = data.encode("utf-8")
        if fmt == "text":
            return self._decode(data).strip()
        if fmt == "pdf":
            return self.extract_pdf(data)
        if fmt == "docx":
            return self.extract_docx(data)
        if fmt == "html":
            return self.extract_html(self._decode(data))
        if fmt == "json":
            return self.extract_json_resume(self._decode(data))
        raise UnsupportedFormatError(f"Unsupported resume format: {fmt}")

    def extract_pdf(self, data: bytes) -> str:
        try:
            reader = PdfReader(BytesIO(data))
            return self._extract_all(reader)
        except (PdfReadError, ValueError, KeyError) as exc:
            raise CorruptDocumentError(f"Could not read PDF: {exc}") from exc

    def _extract_all(self, reader: PdfReader) -> str:
        text = ""
        for page in reader.pages:
            page_text = page.extract_text()
            if page_text:
                text += page_text + "\n"
        return text.strip()

    def extract_docx(self, data: bytes) -> str:
        try:
            document = Document(BytesIO(data))
        except Exception as exc:  # python-docx raises zipfile/lxml errors for broken files
            raise CorruptDocumentError(f"Could not read DOCX: {exc}") from exc
        lines = [p.text for p in document.paragraphs if p.text.strip()]
        for table in document.tables:
            for row in table.rows:
                cells = [c.text.strip() for c in row.cells if c.text.strip()]
                if cells:
                    lines.append(" | ".join(cells))
        return "\n".join(lines).strip()

    def extract_html(self, html: str) -> str:
        soup = BeautifulSoup(html, "html.parser")
        for tag in soup(["script", "style"]):
            tag.decompose()
        body = soup.body or soup
        lines = [line.strip() for line in body.get_text("\n").splitlines()]
        return "\n".join(line for line in lines if line)

    def extract_json_resume(self, raw: str) -> str:
        """Render a JSON Resume document (basics/work/education/skills) as text."""
        try:
            resume: Dict[str, Any] = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CorruptDocumentError("Invalid JSON resume format") from exc
        if not isinstance(resume, dict):
            raise CorruptDocumentError("Invalid JSON resume format")

        out: List[str] = []
        basics = resume.get("basics") or {}
        for key in ("name", "label", "email", "phone", "summary"):
            if basics.get(key):
                out.append(str(basics[key]))
        if out:
            out.append("")

        work = resume.get("work") or []
        if work:
            out.append("WORK EXPERIENCE")
            for job in work:
                company = job.get("company") or job.get("name") or ""
                out.append(f"{job.get('position', '')} at {company}".strip())
                if job.get("startDate"):
                    out.append(f"{job['startDate']} - {job.get('endDate') or 'Present'}")
                if job.get("summary"):
                    out.append(job["summary"])
                out.extend(f"- {h}" for h in job.get("highlights") or [])
                out.append("")

        education = resume.get("education") or []
        if education:
            out.append("EDUCATION")
            for edu in education:
                out.append(f"{edu.get('studyType', '')} in {edu.get('area', '')} at {edu.get('institution', '')}")
                if edu.get("startDate"):
                    out.append(f"{edu['startDate']} - {edu.get('endDate') or 'Present'}")
                out.append("")

        skills = resume.get("skills") or []
        if skills:
            out.append("SKILLS")
            for skill in skills:
                out.append(f"{skill.get('name', '')}: {', '.join(skill.get('keywords') or [])}")

        return "\n".join(out).strip()

    @staticmethod
    def _decode(data: bytes) -> str:
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            return data.decode("latin-1")
