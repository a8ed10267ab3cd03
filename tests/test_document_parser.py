"""DocumentParser tests"""

import base64
import json
from io import BytesIO

import pytest
from docx import Document

from resume_tailor.app.core.artifacts import PDFRenderer
from resume_tailor.app.core.document_parser import DocumentParser, decode_resume_content
from resume_tailor.app.core.errors import CorruptDocumentError, ParsingError, UnsupportedFormatError


@pytest.fixture
def parser():
    return DocumentParser()


class TestDecode:
    def test_text_formats_are_utf8(self):
        assert decode_resume_content("Jane Doe", "text") == b"Jane Doe"

    def test_binary_formats_are_base64(self):
        encoded = base64.b64encode(b"%PDF-1.4").decode()
        assert decode_resume_content(encoded, "pdf") == b"%PDF-1.4"

    def test_data_url(self):
        encoded = base64.b64encode(b"binary").decode()
        assert decode_resume_content(f"data:application/pdf;base64,{encoded}", "pdf") == b"binary"

    def test_invalid_base64(self):
        with pytest.raises(CorruptDocumentError):
            decode_resume_content("%%% not base64 %%%", "docx")


class TestParse:
    def test_plain_text(self, parser):
        assert parser.parse(b"  Jane Doe\nEngineer  ", "text") == "Jane Doe\nEngineer"

    def test_pdf(self, parser):
        pdf_bytes = PDFRenderer().render("# Jane Doe\n\nBackend Engineer at Acme Corp\n")

        text = parser.parse(pdf_bytes, "pdf")

        assert "Jane Doe" in text
        assert "Acme Corp" in text

    def test_corrupt_pdf(self, parser):
        with pytest.raises(CorruptDocumentError):
            parser.parse(b"this is not a pdf", "pdf")

    def test_docx_paragraphs_and_tables(self, parser):
        document = Document()
        document.add_paragraph("Jane Doe")
        document.add_paragraph("Backend Engineer")
        table = document.add_table(rows=1, cols=2)
        table.rows[0].cells[0].text = "Python"
        table.rows[0].cells[1].text = "PostgreSQL"
        buffer = BytesIO()
        document.save(buffer)

        text = parser.parse(buffer.getvalue(), "docx")

        assert "Jane Doe" in text
        assert "Backend Engineer" in text
        assert "Python | PostgreSQL" in text

    def test_corrupt_docx(self, parser):
        with pytest.raises(CorruptDocumentError):
            parser.parse(b"PK not really a zip", "docx")

    def test_html_drops_scripts_and_styles(self, parser):
        html = (
            "<html><head><style>body{color:red}</style></head>"
            "<body><h1>Jane Doe</h1><script>alert(1)</script><p>Engineer</p></body></html>"
        )

        text = parser.parse(html.encode(), "html")

        assert text.splitlines() == ["Jane Doe", "Engineer"]

    def test_json_resume(self, parser):
        resume = {
            "basics": {"name": "Jane Doe", "email": "jane@example.com"},
            "work": [{
                "company": "Acme Corp",
                "position": "Backend Engineer",
                "startDate": "2019-01",
                "highlights": ["Built payment APIs"],
            }],
            "education": [{"institution": "MIT", "area": "Computer Science", "studyType": "BSc"}],
            "skills": [{"name": "Backend", "keywords": ["Python", "SQL"]}],
        }

        text = parser.parse(json.dumps(resume).encode(), "json")

        assert "Jane Doe" in text
        assert "WORK EXPERIENCE" in text
        assert "Backend Engineer at Acme Corp" in text
        assert "2019-01 - Present" in text
        assert "- Built payment APIs" in text
        assert "BSc in Computer Science at MIT" in text
        assert "Backend: Python, SQL" in text

    def test_invalid_json_resume(self, parser):
        with pytest.raises(CorruptDocumentError):
            parser.parse(b"{not json", "json")

    def test_unsupported_format(self, parser):
        with pytest.raises(UnsupportedFormatError) as exc_info:
            parser.parse(b"data", "odt")

        assert isinstance(exc_info.value, ParsingError)
