"""
Shared fixtures: a deterministic keyword embedding provider, a counting
in-memory repository and a canned job description decomposer.
"""
import asyncio
import os
from datetime import date

os.environ.setdefault("ENVIRONMENT", "testing")

import pytest

from cvtailor.helpers.parsing import contains_term
from cvtailor.models.models import (
    Component,
    ComponentType,
    JDComponent,
    JDComponentType,
    JDMetadata,
    JobDescriptionDecomposition,
    SkillGroup,
)
from cvtailor.services.embedding import VectorEmbedder
from cvtailor.services.gateways import InMemoryComponentRepository

VOCAB = [
    "python", "react", "aws", "docker", "kubernetes", "sql",
    "machine learning", "team", "frontend", "java", "design",
]


def keyword_vector(text: str):
    """One dimension per vocabulary term plus a small bias so no vector is all zeros."""
    return [1.0 if contains_term(text, term) else 0.0 for term in VOCAB] + [0.1]


class FakeEmbeddingProvider:
    def __init__(self, overrides=None):
        self.overrides = overrides or {}
        self.embed_calls = 0
        self.batch_calls = 0
        self.embedded_texts = []

    def _vector(self, text):
        if text in self.overrides:
            return list(self.overrides[text])
        return keyword_vector(text)

    async def embed(self, text):
        self.embed_calls += 1
        self.embedded_texts.append(text)
        await asyncio.sleep(0)
        return self._vector(text)

    async def embed_batch(self, texts):
        self.batch_calls += 1
        self.embedded_texts.extend(texts)
        await asyncio.sleep(0)
        return [self._vector(t) for t in texts]

    @property
    def total_calls(self):
        return self.embed_calls + self.batch_calls


class CountingRepository(InMemoryComponentRepository):
    def __init__(self, components_by_user=None):
        self.search_calls = 0
        self.list_calls = 0
        super().__init__(components_by_user)

    async def similarity_search(self, user_id, vector, top_k):
        self.search_calls += 1
        await asyncio.sleep(0)
        return await super().similarity_search(user_id, vector, top_k)

    async def list_components(self, user_id):
        self.list_calls += 1
        return await super().list_components(user_id)


class FakeDecomposer:
    def __init__(self, decomposition):
        self.decomposition = decomposition
        self.calls = 0
        self.texts = []

    async def extract(self, text):
        self.calls += 1
        self.texts.append(text)
        await asyncio.sleep(0)
        return self.decomposition.model_copy(deep=True)


def make_component(type, title, description="", organization=None, highlights=None,
                   start_date=None, end_date=None, id=None, embedding=None):
    component = Component(
        id=id,
        type=type,
        title=title,
        organization=organization,
        description=description,
        highlights=highlights or [],
        start_date=start_date,
        end_date=end_date,
    )
    component.embedding = embedding or keyword_vector(component.embedding_text())
    return component


@pytest.fixture
def provider():
    return FakeEmbeddingProvider()


@pytest.fixture
def embedder(provider):
    return VectorEmbedder(provider)


@pytest.fixture
def sample_components():
    return [
        make_component(
            ComponentType.EXPERIENCE, "Senior Backend Engineer", organization="Acme",
            description="Built python APIs on aws with docker",
            highlights=["Led a team of 5 engineers", "Reduced latency by 40%"],
            start_date=date(2018, 1, 1), id="exp-1",
        ),
        make_component(ComponentType.SKILL, "Python", description="python and sql", id="skill-python"),
        make_component(ComponentType.SKILL, "React", description="react frontend", id="skill-react"),
        make_component(
            ComponentType.EDUCATION, "BSc Computer Science", organization="MIT",
            description="Algorithms and python", id="edu-1",
        ),
        make_component(
            ComponentType.PROJECT, "Recommendation engine",
            description="machine learning with python",
            highlights=["Increased revenue by $2M"], id="proj-1",
        ),
    ]


@pytest.fixture
def repository(sample_components):
    return CountingRepository({"user-1": sample_components})


@pytest.fixture
def backend_decomposition():
    return JobDescriptionDecomposition(
        grouped_skills=[
            SkillGroup(category="Backend", summary="Server side development",
                       technologies=["Python", "AWS", "Docker", "Kubernetes"]),
            SkillGroup(category="Data", summary="", technologies=["SQL", "Machine Learning"]),
        ],
        requirement_components=[
            JDComponent(id="jd-1", type=JDComponentType.SKILL, title="Python",
                        description="Python (Required)", required=True),
            JDComponent(id="jd-2", type=JDComponentType.SKILL, title="Kubernetes",
                        description="Kubernetes (Required)", required=True),
            JDComponent(id="jd-3", type=JDComponentType.RESPONSIBILITY, title="Responsibility",
                        description="Lead a team building python services on aws", required=False),
        ],
        metadata=JDMetadata(
            title="Senior Backend Engineer",
            company="Globex",
            description="Backend role working with python, aws and kubernetes",
            seniority_level="Senior",
        ),
    )


@pytest.fixture
def decomposer(backend_decomposition):
    return FakeDecomposer(backend_decomposition)


JOB_DESCRIPTION = (
    "Senior Backend Engineer at Globex. We need python, aws, docker and kubernetes "
    "experience, plus sql and machine learning."
)


@pytest.fixture
def job_description():
    return JOB_DESCRIPTION
