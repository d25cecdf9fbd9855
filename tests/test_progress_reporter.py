"""Tests for ReindexProgressReporter"""
from cmsmaint.orchestration.progress_reporter import ReindexProgressReporter


def test_prints_on_type_change_and_interval():
    now = [0.0]
    lines = []
    reporter = ReindexProgressReporter(
        {'content': {'count': 4, 'batches': 2}, 'term': {'count': 1, 'batches': 1}},
        output=lines.append, interval=5.0, time_source=lambda: now[0],
    )

    reporter('content', 2)
    now[0] = 1.0
    reporter('content', 4)
    now[0] = 2.0
    reporter('term', 5)

    assert lines == [
        "  Indexing content: 2/5 (40%)",
        "  Indexing term: 5/5 (100%)",
    ]
    assert reporter.indexed == 5


def test_without_estimate():
    lines = []
    ReindexProgressReporter(output=lines.append)('content', 3)
    assert lines == ["  Indexing content: 3"]


def test_final_count_printed_within_interval():
    lines = []
    reporter = ReindexProgressReporter(
        {'content': {'count': 5, 'batches': 3}},
        output=lines.append, interval=60.0, time_source=lambda: 0.0,
    )

    for indexed in (2, 4, 5):
        reporter('content', indexed)

    assert lines == [
        "  Indexing content: 2/5 (40%)",
        "  Indexing content: 5/5 (100%)",
    ]
