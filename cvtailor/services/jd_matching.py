"""
JD Matching Service: matches every requirement of an uploaded job description
against the user's best CV component.
"""
import asyncio
from typing import Callable, Dict, List, Optional, Tuple

from cvtailor.helpers.parsing import extract_document_text, keywords
from cvtailor.models.models import (
    CATEGORIES,
    CATEGORY_BY_TYPE,
    CategoryScores,
    Component,
    JDComponent,
    JDComponentType,
    JDMatchingResults,
    MatchResult,
)
from cvtailor.models.settings import MatchingSettings
from cvtailor.services.embedding import VectorEmbedder
from cvtailor.services.gateways import ComponentRepository, JobDescriptionDecomposer
from cvtailor.services.seniority import SeniorityAnalyzer
from cvtailor.utils.exceptions import (
    CVTailorBaseException,
    DecompositionError,
    RepositoryError,
    ValidationError,
)
from cvtailor.utils.logging_config import PerformanceMonitor, get_logger, log_function_call

logger = get_logger(__name__)

NO_MATCH_SUGGESTIONS = [
    "Add relevant work experiences",
    "Add technical skills",
    "Add educational background",
    "Add projects or achievements",
]


def _keyword_overlap(jd_component: JDComponent, cv_component: Optional[Component]) -> Tuple[List[str], List[str]]:
    jd_words = keywords(jd_component.embedding_text())
    cv_words = set(keywords(cv_component.searchable_text())) if cv_component else set()
    shared = [w for w in jd_words if w in cv_words]
    missing = [w for w in jd_words if w not in cv_words]
    return shared[:5], missing[:5]


class JDMatchingService:
    def __init__(
        self,
        embedder: VectorEmbedder,
        repository: ComponentRepository,
        decomposer: JobDescriptionDecomposer,
        settings: MatchingSettings = None,
        text_extractor: Callable[[bytes], str] = extract_document_text,
        seniority_analyzer: Optional[SeniorityAnalyzer] = None,
    ):
        self.embedder = embedder
        self.repository = repository
        self.decomposer = decomposer
        self.settings = settings or MatchingSettings()
        self.text_extractor = text_extractor
        self.seniority_analyzer = seniority_analyzer or SeniorityAnalyzer(repository)

    @log_function_call
    async def match_job_description(self, document_bytes: bytes, user_id: str) -> JDMatchingResults:
        if not user_id or not str(user_id).strip():
            raise ValidationError("user_id is required", field="user_id")

        with PerformanceMonitor("JD matching", logger=logger):
            # pdf/docx parsing blocks; keep it off the event loop
            loop = asyncio.get_running_loop()
            text = await loop.run_in_executor(None, self.text_extractor, document_bytes)
            try:
                decomposition = await self.decomposer.extract(text)
            except CVTailorBaseException:
                raise
            except Exception as e:
                raise DecompositionError(f"Job description decomposition failed: {e}", cause=e) from e

            jd_components = [c for c in decomposition.requirement_components if c.embedding_text()]
            await self._embed_requirements(jd_components)

            semaphore = asyncio.Semaphore(self.settings.max_concurrency)

            async def run(component: JDComponent) -> MatchResult:
                async with semaphore:
                    return await self.match_component(user_id, component)

            matches = list(await asyncio.gather(*[run(c) for c in jd_components]))

            seniority = None
            if decomposition.metadata.seniority_level:
                seniority = await self.seniority_analyzer.match(user_id, decomposition.metadata.seniority_level)

        results = JDMatchingResults(
            jd_metadata=decomposition.metadata,
            jd_components=jd_components,
            matches=matches,
            overall_score=self.overall_score(matches),
            category_scores=self.category_scores(matches),
            suggestions=self.suggestions(matches),
            missing_components=[m.jd_component for m in matches if m.cv_component is None],
            seniority_analysis=seniority,
        )
        logger.info(f"JD matching complete for user {user_id}: overall score {results.overall_score}%")
        return results

    async def _embed_requirements(self, jd_components: List[JDComponent]) -> None:
        pending = [c for c in jd_components if not c.embedding]
        if not pending:
            return
        vectors = await self.embedder.embed_batch([c.embedding_text() for c in pending])
        for component, vector in zip(pending, vectors):
            component.embedding = vector

    async def _candidate_similarity(self, candidate: Component, vector: List[float]) -> float:
        if candidate.similarity is not None:
            return float(candidate.similarity)
        if candidate.embedding and len(candidate.embedding) != len(vector):
            candidate.embedding = None
        await self.embedder.embed_component(candidate)
        return self.embedder.cosine_similarity(candidate.embedding, vector)

    async def match_component(self, user_id: str, jd_component: JDComponent) -> MatchResult:
        """Best CV component for one requirement, banded through the threshold table."""
        vector = jd_component.embedding or await self.embedder.embed(jd_component.embedding_text())
        try:
            candidates = await self.repository.similarity_search(user_id, vector, self.settings.candidate_top_k)
        except CVTailorBaseException as e:
            e.details.setdefault("user_id", user_id)
            raise
        except Exception as e:
            raise RepositoryError(
                f"Similarity search failed: {e}", operation="similarity_search",
                details={"user_id": user_id}, cause=e,
            ) from e

        thresholds = self.settings.thresholds
        if not candidates:
            _, missing = _keyword_overlap(jd_component, None)
            reasoning = "No matching component found in your CV."
            if missing:
                reasoning += f" Consider adding experience with: {', '.join(missing)}."
            return MatchResult(
                jd_component=jd_component, cv_component=None, score=0,
                match_quality=thresholds.band_for(0), reasoning=reasoning,
            )

        best, best_sim = None, None
        for candidate in candidates:
            sim = await self._candidate_similarity(candidate, vector)
            if best_sim is None or sim > best_sim:
                best, best_sim = candidate, sim

        score = round(max(0.0, min(1.0, best_sim)) * 100)
        shared, missing = _keyword_overlap(jd_component, best)

        if best_sim < self.settings.min_acceptance_similarity:
            score = min(score, thresholds.highest_unmatched_score())
            reasoning = (
                f"No CV component reaches the {self.settings.min_acceptance_similarity:.0%} acceptance threshold; "
                f"closest is '{best.title}' ({best_sim:.0%} similar)."
            )
            if missing:
                reasoning += f" Missing: {', '.join(missing)}."
            return MatchResult(
                jd_component=jd_component, cv_component=None, score=score,
                match_quality=thresholds.band_for(score), reasoning=reasoning,
            )

        reasoning = f"Matched '{best.title}' ({best.type}) at {best_sim:.0%} similarity."
        if shared:
            reasoning += f" Shared: {', '.join(shared)}."
        else:
            reasoning += " No shared keywords; the match is semantic."
        if missing:
            reasoning += f" Missing: {', '.join(missing)}."
        return MatchResult(
            jd_component=jd_component, cv_component=best, score=score,
            match_quality=thresholds.band_for(score), reasoning=reasoning,
        )

    def overall_score(self, matches: List[MatchResult]) -> int:
        """Weighted mean of matched scores; required requirements count ``required_weight`` times."""
        total = 0.0
        weight_sum = 0.0
        for m in matches:
            if m.cv_component is None:
                continue
            w = self.settings.required_weight if m.jd_component.required else 1.0
            total += w * m.score
            weight_sum += w
        if weight_sum == 0:
            return 0
        return round(total / weight_sum)

    @staticmethod
    def category_scores(matches: List[MatchResult]) -> CategoryScores:
        scores: Dict[str, List[int]] = {c: [] for c in CATEGORIES}
        for m in matches:
            if m.cv_component is None:
                continue
            category = CATEGORY_BY_TYPE.get(m.cv_component.type)
            if category:
                scores[category].append(m.score)
        return CategoryScores(**{
            c: float(round(sum(v) / len(v))) if v else 0.0
            for c, v in scores.items()
        })

    def suggestions(self, matches: List[MatchResult]) -> List[str]:
        matched = [m for m in matches if m.cv_component is not None]
        if not matched:
            return list(NO_MATCH_SUGGESTIONS)

        categories = self.category_scores(matches)
        missing = len(matches) - len(matched)
        out = []
        if categories.experience < 60:
            out.append("Add more relevant work experiences that match the job requirements")
        if categories.skills < 60:
            out.append("Highlight more technical skills mentioned in the job description")
        if categories.education < 60 and any(
            m.jd_component.type == JDComponentType.QUALIFICATION.value for m in matches
        ):
            out.append("Ensure your educational qualifications are clearly stated")
        if missing:
            out.append(f"{missing} requirements have no matching components in your CV")
        return out
