"""
assessment_engine/services/palette.py
Question palette read model.

Derived from the answer records on every read; nothing here is stored.

PALETTE STATUS:
- answered            selected option, not flagged
- answered+reviewed   selected option and flagged for review
- reviewed-only       flagged, no selection
- unanswered          neither
"""

from enum import Enum
from typing import Dict, List, Optional, Sequence


class PaletteStatus(str, Enum):
    ANSWERED = "answered"
    ANSWERED_REVIEWED = "answered+reviewed"
    REVIEWED_ONLY = "reviewed-only"
    UNANSWERED = "unanswered"


def palette_status(selected_option_id: Optional[str], is_marked_for_review: bool) -> PaletteStatus:
    if selected_option_id is not None:
        return PaletteStatus.ANSWERED_REVIEWED if is_marked_for_review else PaletteStatus.ANSWERED
    return PaletteStatus.REVIEWED_ONLY if is_marked_for_review else PaletteStatus.UNANSWERED


def build_palette(records: Sequence) -> List[Dict]:
    """One entry per answer record, in question order."""
    return [
        {
            "question_id": record.question_id,
            "position": record.position,
            "status": palette_status(record.selected_option_id, bool(record.is_marked_for_review)).value,
        }
        for record in sorted(records, key=lambda r: r.position)
    ]


def summarize_palette(palette: Sequence[Dict]) -> Dict:
    """Per-status counts plus the progress counters shown on the exam page."""
    counts = {status.value: 0 for status in PaletteStatus}
    for entry in palette:
        counts[entry["status"]] += 1

    answered = counts[PaletteStatus.ANSWERED.value] + counts[PaletteStatus.ANSWERED_REVIEWED.value]
    marked = counts[PaletteStatus.ANSWERED_REVIEWED.value] + counts[PaletteStatus.REVIEWED_ONLY.value]

    return {
        "counts": counts,
        "answered": answered,
        "marked_for_review": marked,
        "unanswered": len(palette) - answered,
        "total": len(palette),
    }
