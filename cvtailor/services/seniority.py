import re
from datetime import date
from typing import Callable, List, Optional

from cvtailor.models.models import (
    Component,
    ComponentType,
    SeniorityAnalysis,
    SeniorityLevel,
    SeniorityMatch,
    SeniorityMetrics,
)
from cvtailor.services.gateways import ComponentRepository
from cvtailor.utils.logging_config import get_logger

logger = get_logger(__name__)

LEADERSHIP_KEYWORDS = [
    "lead", "manager", "director", "head", "chief", "vp", "cto", "ceo",
    "architect", "principal", "staff", "senior", "mentor", "team lead",
]

# (level, phrases) checked in order, most senior first
LEVEL_PHRASES = [
    (SeniorityLevel.PRINCIPAL, ["principal", "distinguished", "fellow"]),
    (SeniorityLevel.LEAD, ["lead", "staff", "head of"]),
    (SeniorityLevel.SENIOR, ["senior", "sr.", "sr"]),
    (SeniorityLevel.MID, ["mid-level", "mid level", "mid", "intermediate"]),
    (SeniorityLevel.JUNIOR, ["junior", "jr.", "jr", "entry level", "entry-level", "entry"]),
    (SeniorityLevel.INTERN, ["intern", "internship", "trainee", "graduate"]),
]

YEARS_RE = re.compile(r"(\d+)\s*(?:\+|-\s*\d+)?\s*(?:years?|yrs?)")


def level_for_years(years: float) -> SeniorityLevel:
    if years < 1:
        return SeniorityLevel.INTERN
    if years < 3:
        return SeniorityLevel.JUNIOR
    if years < 5:
        return SeniorityLevel.MID
    if years < 8:
        return SeniorityLevel.SENIOR
    if years < 12:
        return SeniorityLevel.LEAD
    return SeniorityLevel.PRINCIPAL


def _has_phrase(text: str, phrase: str) -> bool:
    return re.search(r"(?<![a-z0-9])" + re.escape(phrase) + r"(?![a-z0-9])", text) is not None


def parse_level(text: Optional[str]) -> Optional[SeniorityLevel]:
    """Seniority level named by a JD string ("Sr. Engineer", "Staff", "5+ years"), or None."""
    if not text or not text.strip():
        return None
    lower = " ".join(text.lower().split())

    for level in SeniorityLevel:
        if lower == level.value:
            return level
    for level, phrases in LEVEL_PHRASES:
        if any(_has_phrase(lower, p) for p in phrases):
            return level

    m = YEARS_RE.search(lower)
    if m:
        return level_for_years(int(m.group(1)))
    return None


def total_years(experiences: List[Component], today: date) -> float:
    months = 0
    for exp in experiences:
        if not exp.start_date:
            continue
        end = exp.end_date or today
        months += max(0, (end.year - exp.start_date.year) * 12 + (end.month - exp.start_date.month))
    return round(months / 12, 1)


def count_leadership(experiences: List[Component]) -> int:
    return sum(
        1 for exp in experiences
        if any(_has_phrase(exp.searchable_text(), kw) for kw in LEADERSHIP_KEYWORDS)
    )


def education_level(education: List[Component]) -> float:
    """0 none, 1 associate, 2 bachelor, 3 master, 4 doctorate; 0.5 when unclear."""
    if not education:
        return 0.0
    text = " ".join(e.title.lower() for e in education)
    if "phd" in text or "ph.d" in text or "doctorate" in text:
        return 4.0
    if "master" in text or "mba" in text or _has_phrase(text, "msc"):
        return 3.0
    if "bachelor" in text or _has_phrase(text, "bs") or _has_phrase(text, "ba") or _has_phrase(text, "bsc"):
        return 2.0
    if "associate" in text:
        return 1.0
    return 0.5


class SeniorityAnalyzer:
    """Rule-based seniority estimate from a user's experience history."""

    def __init__(self, repository: ComponentRepository, today: Callable[[], date] = date.today):
        self.repository = repository
        self._today = today

    async def analyze(self, user_id: str) -> SeniorityAnalysis:
        components = await self.repository.list_components(user_id)
        if not components:
            return SeniorityAnalysis(
                level=SeniorityLevel.INTERN,
                confidence=100,
                reasoning="No CV components found. Defaulting to intern level.",
            )

        experiences = [c for c in components if c.type == ComponentType.EXPERIENCE.value]
        education = [c for c in components if c.type == ComponentType.EDUCATION.value]
        metrics = SeniorityMetrics(
            total_years=total_years(experiences, self._today()),
            leadership_count=count_leadership(experiences),
            education_level=education_level(education),
        )
        level = level_for_years(metrics.total_years)

        dated = sum(1 for e in experiences if e.start_date)
        confidence = 40 if not dated else min(90, 60 + 10 * dated)
        reasoning = (
            f"Estimated from {metrics.total_years} years of experience across "
            f"{len(experiences)} roles ({metrics.leadership_count} with leadership signals)."
        )
        logger.debug(f"Seniority for user {user_id}: {level.value} ({confidence}%)")
        return SeniorityAnalysis(level=level, confidence=confidence, reasoning=reasoning, metrics=metrics)

    @staticmethod
    def compare(user_level: SeniorityLevel, jd_level: SeniorityLevel, confidence: int = 0) -> SeniorityMatch:
        gap = user_level.rank - jd_level.rank
        u, j = user_level.value, jd_level.value
        if gap == 0:
            advice = f"Perfect match! Your {u} level aligns exactly with the job requirement."
        elif gap == 1:
            advice = f"Good fit! You're one level above ({u} vs {j}). You may be overqualified but could bring valuable experience."
        elif gap == -1:
            advice = f"Stretch opportunity! You're one level below ({u} vs {j}). Consider applying if you're ready for growth."
        elif gap > 1:
            advice = f"You're significantly overqualified ({u} vs {j}, +{gap} levels). This role might not challenge you enough."
        else:
            advice = f"You're below the required level ({u} vs {j}, {gap} levels). Focus on gaining experience in similar roles first."
        return SeniorityMatch(
            user_level=user_level,
            jd_level=jd_level,
            gap=gap,
            is_match=abs(gap) <= 1,
            advice=advice,
            confidence=confidence,
        )

    async def match(self, user_id: str, jd_level_text: Optional[str]) -> Optional[SeniorityMatch]:
        """Compare the user's level with the JD's; None when the JD level is not recognisable."""
        jd_level = parse_level(jd_level_text)
        if jd_level is None:
            logger.debug(f"Unrecognised JD seniority level: {jd_level_text!r}")
            return None
        analysis = await self.analyze(user_id)
        return self.compare(analysis.level, jd_level, confidence=analysis.confidence)
