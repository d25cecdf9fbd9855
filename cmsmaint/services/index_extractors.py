"""
Index data extraction for indexable entity types.

Each extractor turns one owner row into a SearchIndexEntry. Types are
registered by name; the configured indexable_models list selects which
ones a reindex walks.
"""
import re
import sqlite3
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from cmsmaint.errors import ValidationError
from cmsmaint.ingestion.search_index_store import OwnerType, SearchIndexEntry

EXCERPT_LENGTH = 500
MAX_KEYWORDS = 10

STOP_WORDS = frozenset([
    'the', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for', 'of', 'with', 'by',
    'is', 'are', 'was', 'were', 'be', 'been', 'being', 'have', 'has', 'had', 'do',
    'does', 'did', 'will', 'would', 'could', 'should', 'may', 'might', 'must',
])

_TAG = re.compile(r"<[^>]*>")
_WHITESPACE = re.compile(r"\s+")
_WORD = re.compile(r"[a-z][a-z'-]*")


def strip_tags(text: Optional[str]) -> str:
    return _TAG.sub("", text or "")


def generate_excerpt(text: Optional[str], max_length: int = EXCERPT_LENGTH) -> str:
    """Plain-text excerpt cut at a word boundary

    Examples:
        >>> generate_excerpt("<p>Hello   world</p>")
        'Hello world'
        >>> generate_excerpt("alpha beta gamma", max_length=12)
        'alpha beta...'
    """
    text = _WHITESPACE.sub(" ", strip_tags(text))
    if len(text) <= max_length:
        return text
    excerpt = text[:max_length]
    last_space = excerpt.rfind(" ")
    if last_space != -1:
        excerpt = excerpt[:last_space]
    return excerpt + "..."


def generate_keywords(slug: Optional[str], title: Optional[str], body: Optional[str]) -> str:
    """Comma-separated keywords: slug first, then the most frequent words

    Words shorter than four letters and stop words are ignored.
    """
    keywords = [slug] if slug else []
    text = f"{title or ''} {strip_tags(body)}".lower()
    words = [w for w in _WORD.findall(text) if len(w) > 3 and w not in STOP_WORDS]
    keywords.extend(word for word, _ in Counter(words).most_common(MAX_KEYWORDS))
    return ",".join(dict.fromkeys(keywords))


class ContentExtractor:
    """Index data for content rows (posts, pages, custom types)"""

    relevance_boost = 1.0

    def extract(self, row: Dict) -> SearchIndexEntry:
        meta = row.get('meta') if isinstance(row.get('meta'), dict) else {}
        body = row.get('content') or ""
        return SearchIndexEntry(
            searchable_type="content",
            searchable_id=row['id'],
            title=row['title'],
            content=strip_tags(body),
            excerpt=generate_excerpt(body),
            keywords=generate_keywords(row.get('slug'), row['title'], body),
            type=row.get('type'),
            status=row.get('status'),
            author_id=row.get('author_id'),
            published_at=row.get('published_at'),
            relevance_boost=self.relevance_boost,
            meta_data={**meta, 'slug': row.get('slug'), 'parent_id': row.get('parent_id')},
        )


class TermExtractor:
    """Index data for taxonomy terms"""

    # Terms rank below content
    relevance_boost = 0.8

    def __init__(self, taxonomy_name: Callable[[Optional[int]], Optional[str]] = None):
        self.taxonomy_name = taxonomy_name or (lambda taxonomy_id: None)

    def extract(self, row: Dict) -> SearchIndexEntry:
        taxonomy = self.taxonomy_name(row.get('taxonomy_id'))
        return SearchIndexEntry(
            searchable_type="term",
            searchable_id=row['id'],
            title=row['name'],
            content=f"{row['name']} {taxonomy or ''}".strip(),
            excerpt=row['name'],
            keywords=f"{row.get('slug') or ''},{row['name']}",
            type="taxonomy_term",
            status="published",
            author_id=None,
            published_at=row.get('created_at'),
            relevance_boost=self.relevance_boost,
            meta_data={
                'slug': row.get('slug'),
                'taxonomy_id': row.get('taxonomy_id'),
                'taxonomy_name': taxonomy,
                'parent_id': row.get('parent_id'),
            },
        )


class TaxonomyNameLookup:
    """Memoized taxonomy id -> name lookup for term extraction"""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self._names: Dict[int, Optional[str]] = {}

    def __call__(self, taxonomy_id: Optional[int]) -> Optional[str]:
        if taxonomy_id is None:
            return None
        if taxonomy_id not in self._names:
            row = self.conn.execute(
                "SELECT name FROM taxonomies WHERE id = ?", (taxonomy_id,)
            ).fetchone()
            self._names[taxonomy_id] = row[0] if row else None
        return self._names[taxonomy_id]


@dataclass
class IndexableType:
    """An entity type registered for search indexing"""
    name: str
    table: str
    extractor: object

    @property
    def owner(self) -> OwnerType:
        return OwnerType(searchable_type=self.name, table=self.table)


def default_indexable_types(conn: sqlite3.Connection) -> Dict[str, IndexableType]:
    """Registry of the built-in indexable types keyed by name"""
    return {
        "content": IndexableType("content", "content", ContentExtractor()),
        "term": IndexableType("term", "terms", TermExtractor(TaxonomyNameLookup(conn))),
    }


def resolve_types(registry: Dict[str, IndexableType], names: List[str]) -> List[IndexableType]:
    """Look up type names, rejecting any that are not registered"""
    unknown = [name for name in names if name not in registry]
    if unknown:
        raise ValidationError(
            f"Unknown indexable type(s): {', '.join(unknown)}. "
            f"Available: {', '.join(sorted(registry))}"
        )
    return [registry[name] for name in dict.fromkeys(names)]
