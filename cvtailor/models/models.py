from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ComponentType(str, Enum):
    """CV-side component types"""
    EXPERIENCE = "experience"
    EDUCATION = "education"
    SKILL = "skill"
    PROJECT = "project"


class JDComponentType(str, Enum):
    """JD-side component types"""
    REQUIREMENT = "requirement"
    SKILL = "skill"
    RESPONSIBILITY = "responsibility"
    QUALIFICATION = "qualification"


# breakdown category for each CV component type
CATEGORY_BY_TYPE = {
    ComponentType.EXPERIENCE: "experience",
    ComponentType.SKILL: "skills",
    ComponentType.EDUCATION: "education",
    ComponentType.PROJECT: "projects",
}
CATEGORIES = ["experience", "skills", "education", "projects"]

# fields whose change invalidates a cached embedding
EMBEDDED_FIELDS = ("title", "description", "organization")


class MatchQuality(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    WEAK = "weak"
    NONE = "none"

    @property
    def rank(self) -> int:
        return ["none", "weak", "fair", "good", "excellent"].index(self.value)


class FocusArea(str, Enum):
    TECHNICAL = "technical"
    LEADERSHIP = "leadership"
    IMPACT = "impact"
    INNOVATION = "innovation"
    BALANCED = "balanced"


class SeniorityLevel(str, Enum):
    INTERN = "intern"
    JUNIOR = "junior"
    MID = "mid"
    SENIOR = "senior"
    LEAD = "lead"
    PRINCIPAL = "principal"

    @property
    def rank(self) -> int:
        return list(SeniorityLevel).index(self)


# -------- Components --------
class BaseComponent(BaseModel):
    """Shape shared by CV components and JD requirement components.

    Changing ``title``, ``description`` or ``organization`` drops the cached
    embedding so it is recomputed on next use.
    """
    id: Optional[str] = None
    type: str
    title: str
    organization: Optional[str] = None
    description: Optional[str] = None
    highlights: List[str] = Field(default_factory=list)
    embedding: Optional[List[float]] = None

    def __setattr__(self, name: str, value: Any) -> None:
        if name in EMBEDDED_FIELDS and getattr(self, name, None) != value:
            super().__setattr__("embedding", None)
        super().__setattr__(name, value)

    def dedup_key(self) -> str:
        if self.id:
            return self.id
        org = (self.organization or "").strip().lower()
        return f"{self.type}|{self.title.strip().lower()}|{org}"

    def embedding_text(self) -> str:
        highlights = ", ".join(self.highlights)
        if self.type == ComponentType.EXPERIENCE.value:
            text = f"{self.title} at {self.organization or ''} - {self.description or ''} {highlights}"
        elif self.type == ComponentType.EDUCATION.value:
            text = f"{self.title} from {self.organization or ''} - {self.description or ''} {highlights}"
        else:
            text = f"{self.title} - {self.description or ''} {highlights}"
        return " ".join(text.split())

    def searchable_text(self) -> str:
        parts = [self.title, self.organization or "", self.description or "", " ".join(self.highlights)]
        return " ".join(p for p in parts if p).lower()


class Component(BaseComponent):
    type: ComponentType
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    # set by repository searches, never persisted
    similarity: Optional[float] = None

    model_config = {"use_enum_values": True}


class JDComponent(BaseComponent):
    type: JDComponentType = JDComponentType.REQUIREMENT
    required: bool = False
    level: Optional[str] = None
    category: Optional[str] = None

    model_config = {"use_enum_values": True}

    def embedding_text(self) -> str:
        text = self.description or self.title
        if self.level:
            text = f"{text} {self.level}"
        return " ".join(text.split())


# -------- Job descriptions --------
class SkillGroup(BaseModel):
    category: str
    summary: str = ""
    technologies: List[str] = Field(default_factory=list)


class JDMetadata(BaseModel):
    title: str = "Untitled Position"
    company: str = "Unknown Company"
    location: Optional[str] = None
    description: str = ""
    seniority_level: Optional[str] = None
    grouped_skills: List[SkillGroup] = Field(default_factory=list)


class JobDescriptionDecomposition(BaseModel):
    grouped_skills: List[SkillGroup] = Field(default_factory=list)
    requirement_components: List[JDComponent] = Field(default_factory=list)
    metadata: JDMetadata = Field(default_factory=JDMetadata)


# -------- Matching --------
class MatchResult(BaseModel):
    jd_component: JDComponent
    cv_component: Optional[Component] = None
    score: int = Field(ge=0, le=100)
    match_quality: MatchQuality
    reasoning: str

    model_config = {"frozen": True}


class CategoryScores(BaseModel):
    experience: float = 0.0
    skills: float = 0.0
    education: float = 0.0
    projects: float = 0.0


class SeniorityMetrics(BaseModel):
    total_years: float = 0.0
    leadership_count: int = 0
    education_level: float = 0.0


class SeniorityAnalysis(BaseModel):
    level: SeniorityLevel
    confidence: int = Field(ge=0, le=100)
    reasoning: str
    metrics: SeniorityMetrics = Field(default_factory=SeniorityMetrics)


class SeniorityMatch(BaseModel):
    user_level: SeniorityLevel
    jd_level: SeniorityLevel
    gap: int
    is_match: bool
    advice: str
    confidence: int = Field(default=0, ge=0, le=100)


class JDMatchingResults(BaseModel):
    jd_metadata: JDMetadata
    jd_components: List[JDComponent]
    matches: List[MatchResult]
    overall_score: int = Field(ge=0, le=100)
    category_scores: CategoryScores = Field(default_factory=CategoryScores)
    suggestions: List[str] = Field(default_factory=list)
    missing_components: List[JDComponent] = Field(default_factory=list)
    seniority_analysis: Optional[SeniorityMatch] = None


# -------- Optimized match score --------
class MatchScoreMetadata(BaseModel):
    fingerprint: str
    top_k: int
    categories_searched: int = 0
    components_considered: int = 0
    embedding_calls: int = 0
    duration_ms: float = 0.0
    computed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class OptimizedMatchScore(BaseModel):
    score: float = Field(ge=0, le=100)
    breakdown: CategoryScores
    missing_skills: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    top_matched_components: Dict[str, List[Component]] = Field(default_factory=dict)
    metadata: MatchScoreMetadata


class CacheStats(BaseModel):
    hits: int = 0
    misses: int = 0
    size: int = 0
    in_flight: int = 0
    bypasses: int = 0
    evictions: int = 0


# -------- Variants --------
class JDCharacteristics(BaseModel):
    is_technical: bool = False
    requires_leadership: bool = False
    emphasizes_impact: bool = False
    requires_innovation: bool = False
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class ComponentDistribution(BaseModel):
    technical: float = 0.0
    leadership: float = 0.0
    impact: float = 0.0
    innovation: float = 0.0


class FocusAreaAnalysis(BaseModel):
    suggested_focus_areas: List[FocusArea]
    jd_characteristics: JDCharacteristics
    component_distribution: ComponentDistribution
    area_scores: Dict[FocusArea, float] = Field(default_factory=dict)


class SelectedComponent(BaseModel):
    component: Component
    match_score: int
    focus_affinity: float = Field(ge=0.0, le=1.0)
    weight: float


class VariantContent(BaseModel):
    experience: List[SelectedComponent] = Field(default_factory=list)
    education: List[SelectedComponent] = Field(default_factory=list)
    skills: List[SelectedComponent] = Field(default_factory=list)
    projects: List[SelectedComponent] = Field(default_factory=list)

    def all_selected(self) -> List[SelectedComponent]:
        return self.experience + self.education + self.skills + self.projects


class CVVariant(BaseModel):
    id: str
    focus_area: FocusArea
    title: str
    description: str
    score: float = Field(ge=0, le=100)
    content: VariantContent
    reasoning: str
    strength_areas: List[str] = Field(default_factory=list)
    weakness_areas: List[str] = Field(default_factory=list)


class VariantSummary(BaseModel):
    focus_area: FocusArea
    score: float
    delta: float
    rank: int
    is_recommended: bool
    pros: List[str] = Field(default_factory=list)
    cons: List[str] = Field(default_factory=list)


class VariantComparison(BaseModel):
    recommended: CVVariant
    comparison: List[VariantSummary]
