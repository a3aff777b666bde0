"""
Engine Settings Models for Configuration Management
"""
import math
import os
from typing import Callable, Dict, Optional, TypeVar

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator, model_validator

from cvtailor.models.models import MatchQuality
from cvtailor.utils.exceptions import ConfigurationError

load_dotenv()

T = TypeVar("T")


def _env(key: str, cast: Callable[[str], T], default: T) -> T:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {key}", config_key=key, config_value=raw, cause=e) from e


def _build(model_cls, **values):
    try:
        return model_cls(**values)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid {model_cls.__name__}: {e}", cause=e) from e


class EmbeddingSettings(BaseModel):
    """Embedding Model Configuration"""
    model_name: str = Field(default="nomic-embed-text", description="Embedding model name")
    base_url: str = Field(default="http://localhost:11434", description="Ollama base URL")
    dimension: Optional[int] = Field(default=None, description="Expected embedding dimension")
    timeout: int = Field(default=30, ge=1, le=300, description="Request timeout in seconds")

    @classmethod
    def from_env(cls) -> "EmbeddingSettings":
        return _build(
            cls,
            model_name=_env("EMBED_MODEL", str, "nomic-embed-text"),
            base_url=_env("OLLAMA_BASE_URL", str, "http://localhost:11434"),
            dimension=_env("EMBED_DIMENSION", int, None),
            timeout=_env("EMBED_TIMEOUT", int, 30),
        )


class DecomposerSettings(BaseModel):
    """LLM Configuration for job description decomposition"""
    model_name: str = Field(default="llama3.1:8b", description="LLM model name")
    base_url: str = Field(default="http://localhost:11434", description="Ollama base URL")
    temperature: float = Field(default=0.1, ge=0.0, le=2.0, description="Generation temperature")
    timeout: int = Field(default=120, ge=1, le=600, description="Request timeout in seconds")
    max_document_chars: int = Field(default=12000, ge=500, description="JD text sent to the model")

    @classmethod
    def from_env(cls) -> "DecomposerSettings":
        return _build(
            cls,
            model_name=_env("LLM_MODEL", str, "llama3.1:8b"),
            base_url=_env("OLLAMA_BASE_URL", str, "http://localhost:11434"),
            temperature=_env("LLM_TEMPERATURE", float, 0.1),
            timeout=_env("LLM_TIMEOUT", int, 120),
        )


class CategoryWeights(BaseModel):
    """Convex weights combining category breakdowns into the overall score"""
    experience: float = Field(default=0.4, ge=0.0, le=1.0)
    skills: float = Field(default=0.3, ge=0.0, le=1.0)
    education: float = Field(default=0.2, ge=0.0, le=1.0)
    projects: float = Field(default=0.1, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def validate_sum(self):
        total = self.experience + self.skills + self.education + self.projects
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Category weights must sum to 1 (got {total:.4f})")
        return self

    def as_dict(self) -> Dict[str, float]:
        return {
            "experience": self.experience,
            "skills": self.skills,
            "education": self.education,
            "projects": self.projects,
        }


class MatchQualityThresholds(BaseModel):
    """Lower-bound score (0-100) for each match quality band.

    ``band_for`` is the single place where a score turns into a label, so
    strictly decreasing bounds keep the mapping monotone.
    """
    excellent: float = Field(default=85, ge=0, le=100)
    good: float = Field(default=65, ge=0, le=100)
    fair: float = Field(default=40, ge=0, le=100)
    weak: float = Field(default=20, ge=0, le=100)

    @model_validator(mode="after")
    def validate_order(self):
        if not (self.excellent > self.good > self.fair > self.weak):
            raise ValueError("Thresholds must be strictly decreasing: excellent > good > fair > weak")
        return self

    def bands(self):
        """Bands ordered from the highest lower bound to the lowest."""
        return [
            (MatchQuality.EXCELLENT, self.excellent),
            (MatchQuality.GOOD, self.good),
            (MatchQuality.FAIR, self.fair),
            (MatchQuality.WEAK, self.weak),
        ]

    def band_for(self, score: float) -> MatchQuality:
        for quality, lower_bound in self.bands():
            if score >= lower_bound:
                return quality
        return MatchQuality.NONE

    def highest_unmatched_score(self) -> int:
        """Largest integer score that still maps to ``weak`` or ``none``."""
        return max(0, math.ceil(self.fair) - 1)


class OptimizerSettings(BaseModel):
    """Match Score Optimizer configuration"""
    cache_ttl_seconds: float = Field(default=300.0, gt=0, description="Lifetime of cached match scores")
    cache_max_entries: int = Field(default=100, ge=1, description="Entries kept before the oldest are evicted")
    default_top_k: int = Field(default=50, ge=1)
    max_technologies_per_category: int = Field(default=10, ge=1)
    min_similarity: float = Field(default=0.3, ge=-1.0, le=1.0,
                                  description="Components below this similarity do not count")
    top_matches_per_category: int = Field(default=5, ge=1)
    missing_skill_similarity: float = Field(default=0.75, ge=-1.0, le=1.0)
    max_missing_skills: int = Field(default=10, ge=0)
    max_suggestions: int = Field(default=5, ge=1)
    max_concurrency: int = Field(default=4, ge=1, description="Parallel category pipelines per request")
    weights: CategoryWeights = Field(default_factory=CategoryWeights)

    @classmethod
    def from_env(cls) -> "OptimizerSettings":
        weights = _build(
            CategoryWeights,
            experience=_env("MATCH_WEIGHT_EXPERIENCE", float, 0.4),
            skills=_env("MATCH_WEIGHT_SKILLS", float, 0.3),
            education=_env("MATCH_WEIGHT_EDUCATION", float, 0.2),
            projects=_env("MATCH_WEIGHT_PROJECTS", float, 0.1),
        )
        return _build(
            cls,
            cache_ttl_seconds=_env("MATCH_CACHE_TTL", float, 300.0),
            cache_max_entries=_env("MATCH_CACHE_MAX_ENTRIES", int, 100),
            default_top_k=_env("MATCH_TOP_K", int, 50),
            min_similarity=_env("MATCH_MIN_SIMILARITY", float, 0.3),
            max_concurrency=_env("MATCH_MAX_CONCURRENCY", int, 4),
            weights=weights,
        )


class MatchingSettings(BaseModel):
    """JD Matching Service configuration"""
    candidate_top_k: int = Field(default=5, ge=1, description="Candidates retrieved per requirement")
    min_acceptance_similarity: float = Field(default=0.3, ge=-1.0, le=1.0)
    required_weight: float = Field(default=2.0, ge=1.0, description="Weight of required requirements in the overall score")
    max_concurrency: int = Field(default=4, ge=1)
    thresholds: MatchQualityThresholds = Field(default_factory=MatchQualityThresholds)

    @field_validator("min_acceptance_similarity")
    @classmethod
    def validate_acceptance(cls, v):
        if v < 0:
            raise ValueError("min_acceptance_similarity must be non-negative")
        return v

    @classmethod
    def from_env(cls) -> "MatchingSettings":
        thresholds = _build(
            MatchQualityThresholds,
            excellent=_env("MATCH_BAND_EXCELLENT", float, 85),
            good=_env("MATCH_BAND_GOOD", float, 65),
            fair=_env("MATCH_BAND_FAIR", float, 40),
            weak=_env("MATCH_BAND_WEAK", float, 20),
        )
        return _build(
            cls,
            candidate_top_k=_env("MATCH_CANDIDATE_TOP_K", int, 5),
            min_acceptance_similarity=_env("MATCH_MIN_ACCEPTANCE", float, 0.3),
            max_concurrency=_env("MATCH_MAX_CONCURRENCY", int, 4),
            thresholds=thresholds,
        )


class VariantSettings(BaseModel):
    """CV Variant Generator configuration"""
    min_match_score: float = Field(default=40, ge=0, le=100, description="Matches below this are not used in variants")
    focus_emphasis: float = Field(default=0.5, ge=0.0, le=2.0)
    affinity_saturation: int = Field(default=3, ge=1, description="Keyword hits giving full focus affinity")
    max_per_category: Dict[str, int] = Field(
        default_factory=lambda: {"experience": 4, "education": 2, "skills": 8, "projects": 3}
    )
    match_score_weight: float = Field(default=0.7, ge=0.0, le=1.0)

    @field_validator("max_per_category")
    @classmethod
    def validate_caps(cls, v):
        for category, cap in v.items():
            if cap < 0:
                raise ValueError(f'Cap for category "{category}" must be non-negative')
        return v
