"""
CV Variant Generator.

Re-ranks already computed matches for different focus areas (technical,
leadership, impact, innovation, balanced). Keyword heuristics only: no
embedding, retrieval or LLM calls, and the same input always gives the same
variants.
"""
import re
from typing import Dict, List, Sequence

from cvtailor.models.models import (
    CATEGORIES,
    CATEGORY_BY_TYPE,
    ComponentDistribution,
    CVVariant,
    FocusArea,
    FocusAreaAnalysis,
    JDCharacteristics,
    JDComponent,
    JDMetadata,
    MatchResult,
    SelectedComponent,
    VariantComparison,
    VariantContent,
    VariantSummary,
)
from cvtailor.models.settings import VariantSettings
from cvtailor.utils.exceptions import ValidationError
from cvtailor.utils.logging_config import get_logger, log_function_call

logger = get_logger(__name__)

# matched as word prefixes: "lead" also counts "leading", "leadership"
FOCUS_KEYWORDS = {
    FocusArea.TECHNICAL: [
        "react", "node", "python", "java", "aws", "kubernetes", "docker", "sql", "api",
        "framework", "library", "code", "develop", "implement", "build", "engineer",
    ],
    FocusArea.LEADERSHIP: [
        "lead", "manag", "mentor", "team", "director", "head", "vp", "senior", "principal",
        "architect", "coordinat", "oversee", "oversaw", "hire", "hiring", "train",
    ],
    FocusArea.IMPACT: [
        "revenue", "million", "billion", "users", "growth", "increas", "reduc", "saved",
        "roi", "kpi", "metric", "business", "customer",
    ],
    FocusArea.INNOVATION: [
        "innovat", "patent", "research", "r&d", "new", "first", "pioneer", "invent",
        "cutting-edge", "novel", "breakthrough", "prototyp",
    ],
}
SIGNAL_AREAS = list(FOCUS_KEYWORDS)

# quantified outcomes: 40%, $2M, 3x, 10k
METRIC_RE = re.compile(
    r"\d+(?:\.\d+)?\s?%"
    r"|\$\s?\d+(?:[.,]\d+)*\s?[kmb]?\b"
    r"|(?<![a-z0-9])\d+(?:\.\d+)?x(?![a-z0-9])"
    r"|(?<![a-z0-9])\d+(?:\.\d+)?\s?(?:k|million|billion)(?![a-z0-9])"
)

FOCUS_DESCRIPTIONS = {
    FocusArea.TECHNICAL: "Technical Excellence - Emphasize programming languages, frameworks, tools, technical depth, and engineering skills",
    FocusArea.LEADERSHIP: "Leadership & Management - Emphasize team leadership, mentoring, decision-making, and stakeholder management",
    FocusArea.IMPACT: "Business Impact - Emphasize metrics, business outcomes, revenue, user growth, and measurable achievements",
    FocusArea.INNOVATION: "Innovation & R&D - Emphasize new solutions, cutting-edge technology, patents, research, and pioneering work",
    FocusArea.BALANCED: "Balanced Approach - Evenly distribute focus across technical skills, leadership, impact, and innovation",
}

JD_WEIGHT = 0.6
CANDIDATE_WEIGHT = 0.4


def keyword_hits(text: str, area: FocusArea) -> int:
    """Distinct focus keywords in ``text``; impact also counts quantified metrics."""
    text = text.lower()
    hits = sum(
        1 for kw in FOCUS_KEYWORDS[area]
        if re.search(r"(?<![a-z0-9])" + re.escape(kw), text)
    )
    if area == FocusArea.IMPACT:
        hits += len(METRIC_RE.findall(text))
    return hits


class CVVariantGeneratorService:
    def __init__(self, settings: VariantSettings = None):
        self.settings = settings or VariantSettings()

    # ----------------------
    # Affinity
    # ----------------------

    def _saturate(self, hits: int) -> float:
        return min(hits, self.settings.affinity_saturation) / self.settings.affinity_saturation

    def affinity(self, text: str, area: FocusArea) -> float:
        """0..1 alignment of ``text`` with a focus area; balanced averages the four."""
        if area == FocusArea.BALANCED:
            return sum(self._saturate(keyword_hits(text, a)) for a in SIGNAL_AREAS) / len(SIGNAL_AREAS)
        return self._saturate(keyword_hits(text, area))

    # ----------------------
    # Focus area analysis
    # ----------------------

    @log_function_call
    def analyze_focus_areas(
        self,
        matches: List[MatchResult],
        jd_metadata: JDMetadata,
        jd_components: List[JDComponent],
    ) -> FocusAreaAnalysis:
        if not matches:
            raise ValidationError("matches must not be empty", field="matches")
        if not jd_components:
            raise ValidationError("jd_components must not be empty", field="jd_components")

        jd_text = " ".join(
            [jd_metadata.title, jd_metadata.description]
            + [c.embedding_text() for c in jd_components]
            + [" ".join(g.technologies) for g in jd_metadata.grouped_skills]
        )
        emphasis = {a: self.affinity(jd_text, a) for a in SIGNAL_AREAS}

        distribution = {a: 0.0 for a in SIGNAL_AREAS}
        for m in matches:
            if m.cv_component is None:
                continue
            text = m.cv_component.searchable_text()
            for a in SIGNAL_AREAS:
                distribution[a] += (m.score / 100) * keyword_hits(text, a)

        peak = max(distribution.values())
        strength = {a: (v / peak if peak > 0 else 0.0) for a, v in distribution.items()}

        area_scores = {
            a: round(JD_WEIGHT * emphasis[a] + CANDIDATE_WEIGHT * strength[a], 4)
            for a in SIGNAL_AREAS
        }
        area_scores[FocusArea.BALANCED] = round(sum(area_scores.values()) / len(SIGNAL_AREAS), 4)

        # sorted() is stable, so equal scores keep vocabulary order
        ranked = sorted([a for a in SIGNAL_AREAS if area_scores[a] > 0], key=lambda a: -area_scores[a])
        suggested = [FocusArea.BALANCED] + ranked

        characteristics = JDCharacteristics(
            is_technical=emphasis[FocusArea.TECHNICAL] >= 0.5,
            requires_leadership=emphasis[FocusArea.LEADERSHIP] >= 0.5,
            emphasizes_impact=emphasis[FocusArea.IMPACT] >= 0.5,
            requires_innovation=emphasis[FocusArea.INNOVATION] >= 0.5,
            confidence=round(max(emphasis.values()), 2),
        )
        logger.info(f"Suggested focus areas: {', '.join(a.value for a in suggested)}")
        return FocusAreaAnalysis(
            suggested_focus_areas=suggested,
            jd_characteristics=characteristics,
            component_distribution=ComponentDistribution(
                **{a.value: round(v, 4) for a, v in distribution.items()}
            ),
            area_scores=area_scores,
        )

    # ----------------------
    # Variant generation
    # ----------------------

    def _eligible(self, matches: List[MatchResult]) -> List[MatchResult]:
        """Matched components above the score floor, one per component (best score wins)."""
        best: Dict[str, MatchResult] = {}
        for m in matches:
            if m.cv_component is None or m.score < self.settings.min_match_score:
                continue
            key = m.cv_component.dedup_key()
            if key not in best or m.score > best[key].score:
                best[key] = m
        return list(best.values())

    def _aligned(self, text: str, area: FocusArea) -> bool:
        if area == FocusArea.BALANCED:
            return any(keyword_hits(text, a) for a in SIGNAL_AREAS)
        return keyword_hits(text, area) > 0

    def _select(self, eligible: List[MatchResult], area: FocusArea) -> VariantContent:
        by_category: Dict[str, List[SelectedComponent]] = {c: [] for c in CATEGORIES}
        for m in eligible:
            component = m.cv_component
            category = CATEGORY_BY_TYPE.get(component.type)
            if category is None:
                continue
            aff = self.affinity(component.searchable_text(), area)
            highlights = sorted(component.highlights, key=lambda h: not self._aligned(h, area))
            by_category[category].append(SelectedComponent(
                component=component.model_copy(update={"highlights": highlights}),
                match_score=m.score,
                focus_affinity=round(aff, 4),
                weight=round(m.score * (1 + self.settings.focus_emphasis * aff), 4),
            ))

        content = {}
        for category, selected in by_category.items():
            selected.sort(key=lambda s: -s.weight)
            content[category] = selected[: self.settings.max_per_category.get(category, 0)]
        return VariantContent(**content)

    def _build_variant(self, eligible: List[MatchResult], area: FocusArea) -> CVVariant:
        content = self._select(eligible, area)
        selected = content.all_selected()

        if selected:
            mean_score = sum(s.match_score for s in selected) / len(selected)
            mean_affinity = sum(s.focus_affinity for s in selected) / len(selected)
            w = self.settings.match_score_weight
            score = round(min(100.0, w * mean_score + (1 - w) * 100 * mean_affinity), 1)
            aligned = sum(1 for s in selected if s.focus_affinity > 0)
            reasoning = (
                f"Selected {len(selected)} components with a mean match score of {mean_score:.0f}%; "
                f"{aligned} of them carry {area.value} signals."
            )
        else:
            score = 0.0
            reasoning = (
                f"No matched components reach the {self.settings.min_match_score:.0f}% match score "
                f"needed for a {area.value} variant."
            )

        strengths, weaknesses = [], []
        for category in CATEGORIES:
            chosen = getattr(content, category)
            if not chosen:
                weaknesses.append(category)
            elif sum(s.match_score for s in chosen) / len(chosen) >= 65:
                strengths.append(category)

        return CVVariant(
            id=f"variant-{area.value}",
            focus_area=area,
            title=f"{area.value.capitalize()} Focus",
            description=FOCUS_DESCRIPTIONS[area],
            score=score,
            content=content,
            reasoning=reasoning,
            strength_areas=strengths,
            weakness_areas=weaknesses,
        )

    @staticmethod
    def _focus_areas(focus_areas: Sequence) -> List[FocusArea]:
        if not focus_areas:
            raise ValidationError("focus_areas must not be empty", field="focus_areas")
        out: List[FocusArea] = []
        for value in focus_areas:
            try:
                area = FocusArea(value)
            except ValueError as e:
                raise ValidationError(f"Unknown focus area: {value}", field="focus_areas", value=value) from e
            if area not in out:
                out.append(area)
        return out

    @log_function_call
    def generate_variants(
        self,
        matches: List[MatchResult],
        jd_metadata: JDMetadata,
        focus_areas: Sequence,
    ) -> List[CVVariant]:
        """One variant per requested focus area, in request order."""
        if not matches:
            raise ValidationError("matches must not be empty", field="matches")
        areas = self._focus_areas(focus_areas)

        eligible = self._eligible(matches)
        variants = [self._build_variant(eligible, area) for area in areas]
        logger.info(
            f"Generated {len(variants)} variants for '{jd_metadata.title}' "
            f"from {len(eligible)} eligible matches"
        )
        return variants

    # ----------------------
    # Comparison
    # ----------------------

    @staticmethod
    def compare_variants(variants: List[CVVariant]) -> VariantComparison:
        if not variants:
            raise ValidationError("variants must not be empty", field="variants")

        # highest score, then balanced, then input order
        order = sorted(
            range(len(variants)),
            key=lambda i: (-variants[i].score, variants[i].focus_area != FocusArea.BALANCED, i),
        )
        rank_of = {i: r + 1 for r, i in enumerate(order)}
        best = order[0]
        recommended = variants[best]

        comparison = []
        for i, variant in enumerate(variants):
            pros = [f"Score: {variant.score}/100"]
            if variant.strength_areas:
                pros.append(f"Strong in: {', '.join(variant.strength_areas)}")
            pros.append(
                "Well-rounded approach" if variant.focus_area == FocusArea.BALANCED
                else f"Optimized for {variant.focus_area.value}"
            )
            cons = (
                [f"Could improve: {', '.join(variant.weakness_areas)}"]
                if variant.weakness_areas else ["No major weaknesses identified"]
            )
            comparison.append(VariantSummary(
                focus_area=variant.focus_area,
                score=variant.score,
                delta=round(variant.score - recommended.score, 1),
                rank=rank_of[i],
                is_recommended=(i == best),
                pros=pros,
                cons=cons,
            ))
        return VariantComparison(recommended=recommended, comparison=comparison)
