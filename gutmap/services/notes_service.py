"""Behavioural patterns mined from free-text meal notes."""

from typing import List, NamedTuple, Tuple

from gutmap.services.bloating import is_high_bloating, mean, qualifying_records
from gutmap.services.schemas import MealRecord, NotesPattern


class NotePatternRule(NamedTuple):
    type: str
    label: str
    keywords: Tuple[str, ...]


NOTE_PATTERNS: List[NotePatternRule] = [
    NotePatternRule("stress", "Stressed", ("stress", "stressed", "😰", "anxiety", "anxious")),
    NotePatternRule("timing", "Ate Late", ("late", "🌙", "night", "evening", "bedtime")),
    NotePatternRule(
        "rushing",
        "Rushed",
        ("rush", "rushed", "⚡", "hurry", "hurried", "🍴", "quick", "fast"),
    ),
    NotePatternRule("hunger", "Very Hungry", ("hungry", "😋", "starving", "very hungry", "famished")),
    NotePatternRule("restaurant", "Restaurant", ("restaurant", "🍽️", "dining out", "ate out")),
]


class NotesService:
    """Keyword matching over notes of rated meals."""

    MIN_MATCHES_FOR_CORRELATION = 2
    HIGH_CORRELATION_PERCENT = 60
    MEDIUM_CORRELATION_PERCENT = 30

    def compute(self, records: List[MealRecord]) -> List[NotesPattern]:
        noted = [r for r in qualifying_records(records) if r.notes]
        if not noted:
            return []

        patterns = []
        for rule in NOTE_PATTERNS:
            matches = [
                r for r in noted if any(k.lower() in r.notes.lower() for k in rule.keywords)
            ]
            if not matches:
                continue
            high = sum(1 for r in matches if is_high_bloating(r.bloating_rating))
            patterns.append(
                NotesPattern(
                    type=rule.type,
                    label=rule.label,
                    count=len(matches),
                    high_bloating_count=high,
                    correlation=self._correlation(len(matches), high),
                    avg_bloating=round(mean(r.bloating_rating for r in matches), 1),
                )
            )

        # sorted() is stable, so ties keep the rule order
        return sorted(patterns, key=lambda p: -p.count)

    def _correlation(self, count: int, high_count: int) -> str:
        if count < self.MIN_MATCHES_FOR_CORRELATION:
            return "low"
        high_percent = high_count / count * 100
        if high_percent >= self.HIGH_CORRELATION_PERCENT:
            return "high"
        if high_percent >= self.MEDIUM_CORRELATION_PERCENT:
            return "medium"
        return "low"
