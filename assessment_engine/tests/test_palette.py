"""
Palette is derived from answer records on every read.
"""
from types import SimpleNamespace

from assessment_engine.services.palette import (
    PaletteStatus,
    build_palette,
    palette_status,
    summarize_palette,
)


def record(question_id, position, selected=None, marked=False):
    return SimpleNamespace(
        question_id=question_id,
        position=position,
        selected_option_id=selected,
        is_marked_for_review=marked,
    )


def test_status_table():
    assert palette_status("x", False) == PaletteStatus.ANSWERED
    assert palette_status("x", True) == PaletteStatus.ANSWERED_REVIEWED
    assert palette_status(None, True) == PaletteStatus.REVIEWED_ONLY
    assert palette_status(None, False) == PaletteStatus.UNANSWERED


def test_palette_for_mixed_session():
    records = [
        record("q1", 1, selected="q1-a"),
        record("q2", 2, marked=True),
        record("q3", 3, selected="q3-c", marked=True),
        record("q4", 4),
    ]

    palette = build_palette(records)

    assert [entry["status"] for entry in palette] == [
        "answered",
        "reviewed-only",
        "answered+reviewed",
        "unanswered",
    ]


def test_palette_ignores_record_order():
    records = [record("q2", 2, marked=True), record("q1", 1, selected="q1-a")]
    assert [entry["question_id"] for entry in build_palette(records)] == ["q1", "q2"]


def test_summary_counts():
    palette = build_palette([
        record("q1", 1, selected="q1-a"),
        record("q2", 2, marked=True),
        record("q3", 3, selected="q3-c", marked=True),
    ])

    summary = summarize_palette(palette)

    assert summary["answered"] == 2
    assert summary["marked_for_review"] == 2
    assert summary["unanswered"] == 1
    assert summary["total"] == 3
    assert summary["counts"]["reviewed-only"] == 1
