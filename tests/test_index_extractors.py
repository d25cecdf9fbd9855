"""Tests for index data extraction"""
import pytest

from cmsmaint.errors import ValidationError
from cmsmaint.services.index_extractors import (
    ContentExtractor,
    TaxonomyNameLookup,
    TermExtractor,
    default_indexable_types,
    generate_excerpt,
    generate_keywords,
    resolve_types,
)


def test_excerpt_strips_markup_and_cuts_at_word():
    text = "<p>" + "word " * 200 + "</p>"
    excerpt = generate_excerpt(text)

    assert "<p>" not in excerpt
    assert excerpt.endswith("...")
    assert len(excerpt) <= 503
    assert not excerpt[:-3].endswith(" ")


def test_keywords_slug_first_and_by_frequency():
    keywords = generate_keywords(
        "hello-world", "Python caching", "<b>caching</b> with python and caching layers"
    ).split(",")

    assert keywords[0] == "hello-world"
    assert keywords[1] == "caching"
    assert "python" in keywords
    assert "with" not in keywords
    assert "and" not in keywords


def test_content_extractor():
    entry = ContentExtractor().extract({
        'id': 7, 'title': "Hello", 'content': "<p>Body text</p>", 'slug': "hello",
        'type': "post", 'status': "published", 'author_id': 3,
        'published_at': "2024-01-01 00:00:00", 'parent_id': None, 'meta': {'lang': 'en'},
    })

    assert entry.searchable_type == "content"
    assert entry.searchable_id == 7
    assert entry.content == "Body text"
    assert entry.relevance_boost == 1.0
    assert entry.meta_data == {'lang': 'en', 'slug': "hello", 'parent_id': None}


def test_term_extractor_uses_taxonomy_name(conn):
    conn.execute("INSERT INTO taxonomies (id, name) VALUES (4, 'Category')")
    conn.commit()
    extractor = TermExtractor(TaxonomyNameLookup(conn))

    entry = extractor.extract({'id': 2, 'name': "News", 'slug': "news", 'taxonomy_id': 4,
                               'parent_id': None, 'created_at': None})

    assert entry.type == "taxonomy_term"
    assert entry.status == "published"
    assert entry.relevance_boost == 0.8
    assert entry.content == "News Category"
    assert entry.meta_data['taxonomy_name'] == "Category"


def test_resolve_types(conn):
    registry = default_indexable_types(conn)

    assert [t.table for t in resolve_types(registry, ["term", "content", "term"])] == ["terms", "content"]
    with pytest.raises(ValidationError, match="widgets"):
        resolve_types(registry, ["widgets"])
