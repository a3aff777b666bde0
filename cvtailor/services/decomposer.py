"""
Job description decomposition through an Ollama-hosted LLM.

The model output is parsed leniently (models return lists as strings, strings
as lists, and so on) into a ``JobDescriptionDecomposition``.
"""
import asyncio
import uuid
from functools import partial
from typing import Any, Dict, List

import requests

from cvtailor.helpers.parsing import clean_text, dedupe_preserving_order
from cvtailor.helpers.prompts import DECOMPOSE_PROMPT
from cvtailor.models.models import (
    JDComponent,
    JDComponentType,
    JDMetadata,
    JobDescriptionDecomposition,
    SkillGroup,
)
from cvtailor.models.settings import DecomposerSettings
from cvtailor.utils.exceptions import DecompositionError
from cvtailor.utils.logging_config import get_logger
from cvtailor.utils.utils import ollama_generate, safe_json

logger = get_logger(__name__)


def _as_text(x: Any) -> str:
    if x is None:
        return ""
    if isinstance(x, list):
        # join list of sentences or tokens into one paragraph
        return " ".join([str(t).strip() for t in x if str(t).strip()])
    return str(x).strip()


def _as_list(x: Any) -> List[str]:
    if x is None:
        return []
    if isinstance(x, str):
        # split on commas/semicolons; normalize tokens
        parts = [p.strip() for p in x.replace(";", ",").split(",")]
        return [p for p in parts if p]
    if isinstance(x, list):
        return [str(t).strip() for t in x if not isinstance(t, dict) and str(t).strip()]
    return []


def _new_id() -> str:
    return str(uuid.uuid4())


def build_decomposition(data: Dict[str, Any], raw_text: str) -> JobDescriptionDecomposition:
    """Coerce a loosely-shaped extraction dict into a decomposition."""
    components: List[JDComponent] = []

    for req in _as_list(data.get("requirements")):
        components.append(JDComponent(
            id=_new_id(), type=JDComponentType.REQUIREMENT, title="Requirement",
            description=req, required=True,
        ))

    skills = data.get("skills") or []
    if isinstance(skills, str):
        skills = [{"skill": s} for s in _as_list(skills)]
    for skill in skills:
        if isinstance(skill, str):
            skill = {"skill": skill}
        if not isinstance(skill, dict):
            continue
        name = _as_text(skill.get("skill") or skill.get("name"))
        if not name:
            continue
        level = _as_text(skill.get("level")) or None
        required = bool(skill.get("required", False))
        label = "(Required)" if required else "(Optional)"
        components.append(JDComponent(
            id=_new_id(), type=JDComponentType.SKILL, title=name,
            description=" ".join(filter(None, [name, level, label])),
            required=required, level=level,
        ))

    for resp in _as_list(data.get("responsibilities")):
        components.append(JDComponent(
            id=_new_id(), type=JDComponentType.RESPONSIBILITY, title="Responsibility",
            description=resp, required=False,
        ))

    for qual in _as_list(data.get("qualifications")):
        components.append(JDComponent(
            id=_new_id(), type=JDComponentType.QUALIFICATION, title="Qualification",
            description=qual, required=True,
        ))

    groups: List[SkillGroup] = []
    for group in data.get("grouped_skills") or []:
        if not isinstance(group, dict):
            continue
        category = _as_text(group.get("category"))
        technologies = dedupe_preserving_order(_as_list(group.get("technologies")))
        if not category and not technologies:
            continue
        groups.append(SkillGroup(
            category=category or "General",
            summary=_as_text(group.get("summary")),
            technologies=technologies,
        ))
    if not groups:
        skill_names = [c.title for c in components if c.type == JDComponentType.SKILL.value]
        if skill_names:
            groups.append(SkillGroup(category="Skills", summary="", technologies=dedupe_preserving_order(skill_names)))

    for component in components:
        for group in groups:
            if any(component.title.lower() == t.lower() for t in group.technologies):
                component.category = group.category
                break

    metadata = JDMetadata(
        title=_as_text(data.get("title")) or "Untitled Position",
        company=_as_text(data.get("company")) or "Unknown Company",
        location=_as_text(data.get("location")) or None,
        description=raw_text[:500],
        seniority_level=_as_text(data.get("seniority_level")) or None,
        grouped_skills=groups,
    )
    return JobDescriptionDecomposition(
        grouped_skills=groups,
        requirement_components=components,
        metadata=metadata,
    )


class OllamaJobDescriptionDecomposer:
    def __init__(self, settings: DecomposerSettings = None):
        self.settings = settings or DecomposerSettings.from_env()

    async def extract(self, text: str) -> JobDescriptionDecomposition:
        text = clean_text(text or "")
        if not text:
            raise DecompositionError("Job description text is empty")

        prompt = DECOMPOSE_PROMPT.format(doc=text[: self.settings.max_document_chars])
        loop = asyncio.get_running_loop()
        fn = partial(
            ollama_generate,
            prompt,
            model=self.settings.model_name,
            temperature=self.settings.temperature,
            base_url=self.settings.base_url,
            timeout=self.settings.timeout,
        )
        try:
            resp = await loop.run_in_executor(None, fn)
        except requests.RequestException as e:
            raise DecompositionError(f"Job description extraction failed: {e}", cause=e) from e

        data = safe_json(resp, fallback={})
        if not data:
            raise DecompositionError(
                "Model returned no structured job description",
                details={"response_preview": resp[:200]},
            )

        decomposition = build_decomposition(data, text)
        logger.info(
            f"Decomposed JD '{decomposition.metadata.title}' into "
            f"{len(decomposition.requirement_components)} components and "
            f"{len(decomposition.grouped_skills)} skill groups"
        )
        return decomposition
