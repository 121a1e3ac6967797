"""Native (no network) text extraction for text, HTML, e-mail and PDF files."""
import html
import re
from dataclasses import dataclass
from email import policy
from email.parser import BytesParser
from typing import Optional

import fitz
from loguru import logger

MIN_LETTERS = 10
MIN_DIGITS = 2
MIN_LINES = 3

_STYLE_RE = re.compile(r"<style[\s\S]*?</style>", re.IGNORECASE)
_SCRIPT_RE = re.compile(r"<script[\s\S]*?</script>", re.IGNORECASE)
_BLOCK_RE = re.compile(r"<(br|/p|/div|/tr|/li|/h\d)[^>]*>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_SPACES_RE = re.compile(r"[ \t\r\f\v]+")
_BLANK_LINES_RE = re.compile(r"\n\s*\n+")


@dataclass(frozen=True)
class NativeText:
    text: str
    method: str


def file_extension(file_name: Optional[str]) -> str:
    if not file_name or "." not in file_name:
        return ""
    return file_name.rsplit(".", 1)[-1].lower()


def strip_html(raw: str) -> str:
    text = _STYLE_RE.sub(" ", raw)
    text = _SCRIPT_RE.sub(" ", text)
    text = _BLOCK_RE.sub("\n", text)
    text = _TAG_RE.sub(" ", text)
    text = html.unescape(text)
    text = _SPACES_RE.sub(" ", text)
    text = _BLANK_LINES_RE.sub("\n", text)
    return "\n".join(line.strip() for line in text.splitlines()).strip()


def _decode(content: bytes) -> str:
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError:
        return content.decode("latin-1")


def _eml_text(content: bytes) -> str:
    message = BytesParser(policy=policy.default).parsebytes(content)
    body = message.get_body(preferencelist=("plain", "html"))
    header = "\n".join(
        f"{name}: {message[name]}" for name in ("Subject", "From", "Date") if message[name]
    )
    if body is None:
        return header
    text = body.get_content()
    if body.get_content_type() == "text/html":
        text = strip_html(text)
    return f"{header}\n{text}".strip()


def _pdf_text(content: bytes) -> str:
    with fitz.open(stream=content, filetype="pdf") as document:
        return "\n".join(page.get_text() for page in document).strip()


def extract_native_text(content: bytes, file_name: Optional[str], mime_type: Optional[str] = None) -> Optional[NativeText]:
    """Read text straight from the file when its format carries text.

    Returns None for formats with no native text layer (images) or when the
    text layer is empty.
    """
    ext = file_extension(file_name)
    mime = (mime_type or "").lower()

    if ext == "txt" or mime == "text/plain":
        text, method = _decode(content).strip(), "native_text"
    elif ext in ("html", "htm") or mime == "text/html":
        text, method = strip_html(_decode(content)), "native_html"
    elif ext == "eml" or mime == "message/rfc822":
        text, method = _eml_text(content), "native_eml"
    elif ext == "pdf" or mime == "application/pdf":
        try:
            text = _pdf_text(content)
        except (RuntimeError, ValueError) as e:
            logger.warning(f"PDF text layer unreadable: {type(e).__name__}: {e}")
            return None
        method = "native_pdf"
    else:
        return None

    if not text:
        return None
    return NativeText(text=text, method=method)


def has_structured_density(text: str) -> bool:
    """Whether the text has enough letters, digits and lines to be a real document."""
    letters = sum(1 for char in text if char.isalpha())
    digits = sum(1 for char in text if char.isdigit())
    lines = sum(1 for line in text.splitlines() if line.strip())
    return letters >= MIN_LETTERS and digits >= MIN_DIGITS and lines >= MIN_LINES
