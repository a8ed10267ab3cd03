# resume_tailor/app/core/artifacts.py

from dataclasses import dataclass
from html import escape
from io import BytesIO
from typing import Iterator, List, Tuple
import logging
import re

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import cm
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, ListFlowable
from reportlab.lib import colors

from resume_tailor.app.core.errors import UnsupportedFormatError

logger = logging.getLogger(__name__)

MIME_TYPES = {
    "text": "text/plain",
    "markdown": "text/markdown",
    "html": "text/html",
    "pdf": "application/pdf",
}

Block = Tuple[str, object]

HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Resume</title>
  <style>
    body {{ font-family: Arial, sans-serif; line-height: 1.6; margin: 0; padding: 20px; color: #333; }}
    h1, h2, h3 {{ margin-top: 20px; margin-bottom: 10px; color: #2c3e50; }}
    h1 {{ font-size: 24px; border-bottom: 1px solid #eee; padding-bottom: 10px; }}
    h2 {{ font-size: 20px; border-bottom: 1px solid #eee; padding-bottom: 5px; }}
    h3 {{ font-size: 18px; }}
    ul, ol {{ padding-left: 20px; }}
    li {{ margin-bottom: 5px; }}
    .container {{ max-width: 800px; margin: 0 auto; }}
  </style>
</head>
<body>
  <div class="container">
{body}
  </div>
</body>
</html>
"""


@dataclass(frozen=True)
class FormattedOutput:
    content: bytes
    mime_type: str


# ---------- Markdown-lite parsing shared by the HTML and PDF renderers ----------

def text_to_markdown(text: str) -> str:
    """
    Heuristic plain text -> markdown:
    - ALL CAPS lines become '## ' section headings
    - '-', '*' and '•' lines stay bullets
    - everything else is kept as a paragraph line
    """
    if _looks_like_markdown(text):
        return text
    out: List[str] = []
    for raw in text.splitlines():
        line = raw.rstrip()
        stripped = line.strip()
        if not stripped:
            out.append("")
        elif stripped.startswith(("•", "* ", "- ")):
            out.append(f"- {stripped.lstrip('•*- ').strip()}")
        elif stripped.isupper() and any(c.isalpha() for c in stripped):
            out.extend(["", f"## {stripped.title()}", ""])
        else:
            out.append(line)
    return "\n".join(out).strip() + "\n"


def _looks_like_markdown(text: str) -> bool:
    return any(line.startswith("#") for line in text.splitlines()) or "**" in text


def iter_blocks(markdown: str) -> Iterator[Block]:
    """
    Very light-weight markdown-ish block parser:
    - '# ', '## ', '### ' headings
    - '- ' or '* ' unordered bullets
    - '1. ' ordered bullets
    - Blank lines -> paragraph spacing
    """
    buffer_ul: List[str] = []
    buffer_ol: List[str] = []

    def flush_lists() -> Iterator[Block]:
        nonlocal buffer_ul, buffer_ol
        if buffer_ul:
            yield ("ul", buffer_ul)
            buffer_ul = []
        if buffer_ol:
            yield ("ol", buffer_ol)
            buffer_ol = []

    for raw in markdown.splitlines():
        line = raw.rstrip()

        # Blank line separates blocks
        if not line.strip():
            yield from flush_lists()
            yield ("space", None)
            continue

        # Headings
        heading = re.match(r"^(#{1,3})\s+(.*)$", line)
        if heading:
            yield from flush_lists()
            yield (f"h{len(heading.group(1))}", heading.group(2))
            continue

        # Ordered list "1. ", "2. ", etc.
        m_num = re.match(r"^\s*\d+\.\s+(.*)$", line)
        if m_num:
            buffer_ol.append(m_num.group(1))
            continue

        # Unordered bullets "- " or "* "
        if line.lstrip().startswith(("- ", "* ")):
            buffer_ul.append(line.lstrip()[2:])
            continue

        # Normal paragraph
        yield from flush_lists()
        yield ("p", line)

    yield from flush_lists()


def _inline_format(text: str) -> str:
    """Convert **bold** and *italic* markdown to HTML tags (input must already be escaped)."""
    text = re.sub(r"\*\*(.+?)\*\*", r"<b>\1</b>", text)
    text = re.sub(r"(?<!\*)\*(?!\s)(.+?)(?<!\s)\*(?!\*)", r"<i>\1</i>", text)
    return text


def _escape(text: str) -> str:
    """Minimal XML/HTML escaping for ReportLab Paragraph and HTML output."""
    return escape(text, quote=False)


# ---------- Renderers ----------

class HTMLRenderer:
    def render(self, markdown: str) -> str:
        parts: List[str] = []
        for kind, value in iter_blocks(markdown):
            if kind == "space":
                continue
            if kind in ("h1", "h2", "h3"):
                parts.append(f"<{kind}>{_inline_format(_escape(value))}</{kind}>")
            elif kind in ("ul", "ol"):
                items = "".join(f"<li>{_inline_format(_escape(x))}</li>" for x in value)
                parts.append(f"<{kind}>{items}</{kind}>")
            else:
                parts.append(f"<p>{_inline_format(_escape(value))}</p>")
        body = "\n".join(f"    {p}" for p in parts)
        return HTML_TEMPLATE.format(body=body)


class PDFRenderer:
    """Render a resume as a PDF using ReportLab."""

    def __init__(self):
        styles = getSampleStyleSheet()
        self.h1 = styles["Heading1"]
        self.h2 = styles["Heading2"]
        self.h3 = styles["Heading3"]
        self.body = styles["BodyText"]

    def render(self, markdown: str) -> bytes:
        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer, pagesize=A4,
            topMargin=2 * cm, bottomMargin=2 * cm,
            leftMargin=2 * cm, rightMargin=2 * cm,
            title="Resume",
        )
        flow = self._flowables(markdown or "_No content._")
        doc.build(flow)
        return buffer.getvalue()

    def _flowables(self, markdown: str) -> List:
        flow: List = []
        headings = {"h1": self.h1, "h2": self.h2, "h3": self.h3}
        for kind, value in iter_blocks(markdown):
            if kind == "space":
                flow.append(Spacer(1, 0.2 * cm))
            elif kind in headings:
                flow.append(Paragraph(_escape(value), headings[kind]))
            elif kind in ("ul", "ol"):
                flow += self._list(value, bullet_type="bullet" if kind == "ul" else "1")
                flow.append(Spacer(1, 0.2 * cm))
            else:
                flow.append(Paragraph(_inline_format(_escape(value)), self.body))
        return flow

    def _list(self, items: List[str], bullet_type: str) -> List:
        paras = [Paragraph(_inline_format(_escape(x)), self.body) for x in items]
        return [ListFlowable(
            paras,
            bulletType=bullet_type,
            leftIndent=10,
            bulletColor=colors.black,
        )]


class OutputFormatter:
    """Converts the final resume text into the requested output format."""

    def __init__(self):
        self.html = HTMLRenderer()
        self.pdf = PDFRenderer()

    def format(self, text: str, target: str) -> FormattedOutput:
        target = (target or "text").lower()
        if target == "text":
            return FormattedOutput(text.encode("utf-8"), MIME_TYPES["text"])
        markdown = text_to_markdown(text)
        if target == "markdown":
            return FormattedOutput(markdown.encode("utf-8"), MIME_TYPES["markdown"])
        if target == "html":
            return FormattedOutput(self.html.render(markdown).encode("utf-8"), MIME_TYPES["html"])
        if target == "pdf":
            return FormattedOutput(self.pdf.render(markdown), MIME_TYPES["pdf"])
        raise UnsupportedFormatError(f"Unsupported output format: {target}")
