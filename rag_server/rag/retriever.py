"""Formatting of retrieved chunks for LLM consumption."""
import re
from typing import List

from rag_server.rag.documents import Document

_MD_SUFFIX = re.compile(r"\.md$")
_WHITESPACE = re.compile(r"\s+")


def deduplicate_results(results: List[Document]) -> List[Document]:
    """Drop results whose trimmed content was already seen, keeping order."""
    seen = set()
    unique = []
    for result in results:
        content_key = result.content.strip()
        if content_key not in seen:
            seen.add(content_key)
            unique.append(result)
    return unique


def document_slug(source: str) -> str:
    """Tag name for a source: trailing ``.md`` removed, whitespace -> ``_``."""
    return _WHITESPACE.sub("_", _MD_SUFFIX.sub("", source))


def format_document(document: Document) -> str:
    slug = document_slug(document.source)
    return f"[DOCUMENT:{slug}]\n{document.content.strip()}\n[/DOCUMENT:{slug}]"


def format_results(results: List[Document]) -> str:
    """Render de-duplicated results as tagged blocks separated by blank lines."""
    return "\n\n".join(format_document(doc) for doc in deduplicate_results(results))
