"""
Match Score Optimizer: scores a user's component library against a job
description, per category, with a TTL + single-flight cache in front.
"""
import asyncio
import hashlib
from typing import Dict, List, Optional, Tuple

from cvtailor.helpers.parsing import (
    clean_text,
    contains_term,
    dedupe_preserving_order,
    keywords,
    normalize_job_description,
)
from cvtailor.models.models import (
    CATEGORIES,
    CATEGORY_BY_TYPE,
    CacheStats,
    CategoryScores,
    Component,
    JDComponentType,
    JobDescriptionDecomposition,
    JDMetadata,
    MatchScoreMetadata,
    OptimizedMatchScore,
    SkillGroup,
)
from cvtailor.models.settings import OptimizerSettings
from cvtailor.services.embedding import VectorEmbedder
from cvtailor.services.gateways import ComponentRepository, JobDescriptionDecomposer
from cvtailor.services.match_cache import MatchScoreCache
from cvtailor.services.seniority import LEVEL_PHRASES
from cvtailor.utils.exceptions import (
    CVTailorBaseException,
    DecompositionError,
    RepositoryError,
    ValidationError,
)
from cvtailor.utils.logging_config import PerformanceMonitor, get_logger, log_function_call

logger = get_logger(__name__)

EMPTY_LIBRARY_SUGGESTION = (
    "Your component library is empty: add your experiences, skills, education and projects to get a match score"
)

CATEGORY_SUGGESTIONS = {
    "experience": "Add work experiences that are relevant to this role",
    "skills": "Add technical skills that match the job requirements",
    "education": "Add education or certifications relevant to this role",
    "projects": "Add relevant projects to showcase your practical experience",
}

# placeholder the decomposer uses when a JD names no title
DEFAULT_JD_TITLE = JDMetadata.model_fields["title"].default

# level words ("senior", "jr") are not skills
SENIORITY_WORDS = {p.strip(".") for _, phrases in LEVEL_PHRASES for p in phrases if " " not in p}

# (exclusive upper bound, message); the last band catches everything else
SCORE_BANDS = [
    (50, "Your profile needs significant improvements to match this role"),
    (70, "Good match! Add more details to improve your score"),
    (85, "Great match! A few additions could make it perfect"),
    (None, "Excellent match! Your profile aligns very well with this role"),
]


def fingerprint(user_id: str, job_description: str, top_k: int) -> str:
    """Deterministic cache key; textual, not semantic."""
    raw = "\x1f".join([user_id, normalize_job_description(job_description), str(top_k)])
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class MatchScoreOptimizer:
    def __init__(
        self,
        embedder: VectorEmbedder,
        repository: ComponentRepository,
        decomposer: JobDescriptionDecomposer,
        settings: OptimizerSettings = None,
        cache: MatchScoreCache = None,
    ):
        self.embedder = embedder
        self.repository = repository
        self.decomposer = decomposer
        self.settings = settings or OptimizerSettings()
        self.cache = cache if cache is not None else MatchScoreCache(
            ttl_seconds=self.settings.cache_ttl_seconds,
            max_entries=self.settings.cache_max_entries,
            copier=lambda result: result.model_copy(deep=True),
        )

    # ----------------------
    # Public API
    # ----------------------

    @log_function_call
    async def calculate_optimized_match_score(
        self,
        user_id: str,
        job_description: str,
        use_cache: bool = True,
        top_k: Optional[int] = None,
    ) -> OptimizedMatchScore:
        top_k = self.settings.default_top_k if top_k is None else top_k
        if not user_id or not str(user_id).strip():
            raise ValidationError("user_id is required", field="user_id")
        if not job_description or not job_description.strip():
            raise ValidationError("job_description is required", field="job_description")
        if not isinstance(top_k, int) or top_k < 1:
            raise ValidationError("top_k must be a positive integer", field="top_k", value=top_k)

        fp = fingerprint(user_id, job_description, top_k)
        try:
            return await self.cache.get_or_compute(
                fp,
                lambda: self._compute(user_id, job_description, top_k, fp),
                use_cache=use_cache,
            )
        except CVTailorBaseException as e:
            e.details.setdefault("fingerprint", fp)
            e.details.setdefault("user_id", user_id)
            raise

    def get_cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def clear_cache(self) -> None:
        self.cache.clear()

    # ----------------------
    # Computation
    # ----------------------

    async def _compute(self, user_id: str, job_description: str, top_k: int, fp: str) -> OptimizedMatchScore:
        logger.info(f"Calculating fresh match score for user {user_id} ({fp[:12]})")
        with PerformanceMonitor("match score computation", logger=logger) as monitor:
            decomposition = await self._decompose(job_description)
            groups = self._skill_groups(decomposition, job_description)

            semaphore = asyncio.Semaphore(self.settings.max_concurrency)

            async def run(group: SkillGroup):
                async with semaphore:
                    return await self._search_group(user_id, group, top_k)

            # join barrier: aggregation needs every category result
            group_results = await asyncio.gather(*[run(g) for g in groups])
            embedding_calls = len(groups)

            components = self._deduplicate(group_results)
            technologies = dedupe_preserving_order(
                t for g in groups for t in g.technologies[: self.settings.max_technologies_per_category]
            )

            if not components:
                logger.warning(f"No components found for user {user_id}")
                result = self._empty_result(technologies)
            else:
                missing, calls = await self._missing_skills(technologies, [c for _, c in components])
                embedding_calls += calls
                result = self._score(components, missing)

        result.metadata = MatchScoreMetadata(
            fingerprint=fp,
            top_k=top_k,
            categories_searched=len(groups),
            components_considered=len(components),
            embedding_calls=embedding_calls,
            duration_ms=round(monitor.elapsed_ms, 2),
        )
        logger.info(f"Match score for user {user_id}: {result.score}")
        return result

    async def _decompose(self, job_description: str) -> JobDescriptionDecomposition:
        try:
            return await self.decomposer.extract(job_description)
        except CVTailorBaseException:
            raise
        except Exception as e:
            raise DecompositionError(f"Job description decomposition failed: {e}", cause=e) from e

    def _skill_groups(self, decomposition: JobDescriptionDecomposition, job_description: str) -> List[SkillGroup]:
        groups = [g for g in decomposition.grouped_skills if g.category or g.technologies]
        if groups:
            return groups

        # no grouped skills: search once with the whole JD
        skill_titles = [
            c.title for c in decomposition.requirement_components
            if c.type == JDComponentType.SKILL.value
        ]
        title = decomposition.metadata.title
        if title == DEFAULT_JD_TITLE:
            title = ""
        technologies = dedupe_preserving_order(skill_titles) or [
            w for w in keywords(f"{title} {job_description}") if w not in SENIORITY_WORDS
        ]
        return [SkillGroup(
            category=title or "General",
            summary=clean_text(job_description)[:500],
            technologies=technologies[: self.settings.max_technologies_per_category],
        )]

    def _query_text(self, group: SkillGroup) -> str:
        technologies = group.technologies[: self.settings.max_technologies_per_category]
        parts = [group.category]
        if group.summary:
            parts.append(group.summary)
        if technologies:
            parts.append("Technologies: " + ", ".join(technologies))
        return clean_text(". ".join(p for p in parts if p))

    async def _search_group(self, user_id: str, group: SkillGroup, top_k: int) -> List[Tuple[float, Component]]:
        vector = await self.embedder.embed(self._query_text(group))
        try:
            hits = await self.repository.similarity_search(user_id, vector, top_k)
        except CVTailorBaseException:
            raise
        except Exception as e:
            raise RepositoryError(
                f"Similarity search failed: {e}", operation="similarity_search", cause=e
            ) from e
        logger.debug(f"Category '{group.category}' returned {len(hits)} components")
        return [(self._similarity(c, vector), c) for c in hits]

    def _similarity(self, component: Component, query: List[float]) -> float:
        if component.similarity is not None:
            return float(component.similarity)
        if component.embedding and len(component.embedding) == len(query):
            return self.embedder.cosine_similarity(component.embedding, query)
        return 0.0

    @staticmethod
    def _deduplicate(group_results: List[List[Tuple[float, Component]]]) -> List[Tuple[float, Component]]:
        """Merge category results by component id (or synthetic key), keeping the best similarity."""
        best: Dict[str, Tuple[float, Component]] = {}
        for results in group_results:
            for sim, component in results:
                key = component.dedup_key()
                if key not in best or sim > best[key][0]:
                    best[key] = (sim, component)
        return list(best.values())

    async def _missing_skills(self, technologies: List[str], components: List[Component]) -> Tuple[List[str], int]:
        texts = [c.searchable_text() for c in components]
        candidates = [t for t in technologies if not any(contains_term(text, t) for text in texts)]

        calls = 0
        embedded = [c.embedding for c in components if c.embedding]
        if candidates and embedded:
            vectors = await self.embedder.embed_batch(candidates)
            calls = 1
            still_missing = []
            for tech, vector in zip(candidates, vectors):
                sims = [
                    self.embedder.cosine_similarity(vector, emb)
                    for emb in embedded if len(emb) == len(vector)
                ]
                if not sims or max(sims) < self.settings.missing_skill_similarity:
                    still_missing.append(tech)
            candidates = still_missing

        return candidates[: self.settings.max_missing_skills], calls

    def _score(self, components: List[Tuple[float, Component]], missing: List[str]) -> OptimizedMatchScore:
        by_category: Dict[str, List[Tuple[float, Component]]] = {c: [] for c in CATEGORIES}
        for sim, component in components:
            if sim < self.settings.min_similarity:
                continue
            category = CATEGORY_BY_TYPE.get(component.type)
            if category:
                by_category[category].append((sim, component))

        breakdown = {}
        top_matched = {}
        for category, scored in by_category.items():
            scored.sort(key=lambda pair: pair[0], reverse=True)
            top = scored[: self.settings.top_matches_per_category]
            if top:
                mean = sum(s for s, _ in top) / len(top)
                breakdown[category] = round(min(100.0, max(0.0, mean * 100)), 1)
            else:
                breakdown[category] = 0.0
            ranked = []
            for sim, component in top:
                hit = component.model_copy()
                hit.similarity = sim
                ranked.append(hit)
            top_matched[category] = ranked

        weights = self.settings.weights.as_dict()
        overall = sum(weights[c] * breakdown[c] for c in CATEGORIES)
        overall = round(min(100.0, max(0.0, overall)), 1)

        return OptimizedMatchScore(
            score=overall,
            breakdown=CategoryScores(**breakdown),
            missing_skills=missing,
            suggestions=self._suggestions(overall, breakdown, missing),
            top_matched_components=top_matched,
            metadata=MatchScoreMetadata(fingerprint="", top_k=0),
        )

    def _empty_result(self, technologies: List[str]) -> OptimizedMatchScore:
        missing = technologies[: self.settings.max_missing_skills]
        suggestions = [EMPTY_LIBRARY_SUGGESTION]
        if missing:
            suggestions.append(f"Consider adding these skills: {', '.join(missing[:5])}")
        return OptimizedMatchScore(
            score=0.0,
            breakdown=CategoryScores(),
            missing_skills=missing,
            suggestions=suggestions[: self.settings.max_suggestions],
            top_matched_components={c: [] for c in CATEGORIES},
            metadata=MatchScoreMetadata(fingerprint="", top_k=0),
        )

    def _suggestions(self, score: float, breakdown: Dict[str, float], missing: List[str]) -> List[str]:
        suggestions = []
        for upper, message in SCORE_BANDS:
            if upper is None or score < upper:
                suggestions.append(message)
                break

        if missing:
            suggestions.append(f"Consider adding these skills: {', '.join(missing[:5])}")

        weights = self.settings.weights.as_dict()
        for category in sorted(CATEGORIES, key=lambda c: weights[c], reverse=True):
            if breakdown[category] == 0.0:
                suggestions.append(CATEGORY_SUGGESTIONS[category])

        return suggestions[: self.settings.max_suggestions]
