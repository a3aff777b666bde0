import io
import re
import zipfile
from typing import Iterable, List, Set

from pdfminer.high_level import extract_text as pdf_extract
from pdfminer.psparser import PSException
from docx import Document
from docx.opc.exceptions import PackageNotFoundError

from cvtailor.utils.exceptions import DecompositionError

STOPWORDS = {
    "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "has", "have", "in", "is",
    "it", "its", "of", "on", "or", "our", "the", "to", "we", "will", "with", "you", "your",
    "experience", "experienced", "years", "year", "strong", "ability", "knowledge", "skills",
    "skill", "plus", "including", "using", "work", "working", "team", "required", "preferred",
    "optional", "good", "excellent", "understanding", "proficiency", "proficient", "familiarity",
    "must", "should", "etc", "e.g", "i.e", "requirement", "responsibility", "qualification",
}

TOKEN_RE = re.compile(r"[a-z0-9][a-z0-9+#.\-/]*[a-z0-9+#]|[a-z0-9]")


def read_pdf_bytes(data: bytes) -> str:
    return pdf_extract(io.BytesIO(data))


def read_docx_bytes(data: bytes) -> str:
    doc = Document(io.BytesIO(data))
    return "\n".join([p.text for p in doc.paragraphs])


def read_txt_bytes(data: bytes) -> str:
    return data.decode("utf-8", errors="ignore")


def extract_document_text(data: bytes) -> str:
    """Turn an uploaded job description (PDF, DOCX or plain text) into text."""
    if not data:
        raise DecompositionError("Job description document is empty")
    try:
        if data[:5] == b"%PDF-":
            text = read_pdf_bytes(data)
            kind = "pdf"
        elif data[:2] == b"PK":
            text = read_docx_bytes(data)
            kind = "docx"
        else:
            text = read_txt_bytes(data)
            kind = "txt"
    except (PSException, PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
        raise DecompositionError(f"Unreadable job description document: {e}", cause=e) from e

    text = clean_text(text)
    if not text:
        raise DecompositionError("No text could be extracted from the job description", document_type=kind)
    return text


def clean_text(x: str) -> str:
    x = re.sub(r'\s+', ' ', x).strip()
    return x


def normalize_job_description(text: str) -> str:
    """Trim, collapse whitespace and case-fold (cache fingerprint input)."""
    return clean_text(text).casefold()


def tokenize(text: str) -> List[str]:
    return TOKEN_RE.findall((text or "").lower())


def keywords(text: str) -> List[str]:
    """Distinct content words in first-seen order."""
    seen: Set[str] = set()
    out = []
    for tok in tokenize(text):
        tok = tok.strip(".-/")
        if len(tok) < 2 or tok in STOPWORDS or tok.isdigit() or tok in seen:
            continue
        seen.add(tok)
        out.append(tok)
    return out


def contains_term(text: str, term: str) -> bool:
    """Whole-word, case-insensitive containment ("go" does not match "google")."""
    term = term.strip().lower()
    if not term:
        return False
    pattern = r"(?<![a-z0-9])" + re.escape(term) + r"(?![a-z0-9])"
    return re.search(pattern, text.lower()) is not None


def dedupe_preserving_order(items: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for item in items:
        key = item.strip().lower()
        if not key or key in seen:
            continue
        seen.add(key)
        out.append(item.strip())
    return out
