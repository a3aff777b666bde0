DECOMPOSE_PROMPT = """You are a job description analyst.
Given the job description below, return strict JSON with keys:
title, company, location, seniority_level, grouped_skills, requirements, skills,
responsibilities, qualifications.

- grouped_skills: list of {{"category": str, "summary": str, "technologies": [str]}}
  grouping related tools/technologies (e.g. "Frontend", "Cloud & DevOps").
- requirements, responsibilities, qualifications: lists of short sentences.
- skills: list of {{"skill": str, "level": str or null, "required": bool}}.
- seniority_level: one of intern, junior, mid, senior, lead, principal, or null.
- If unknown, use null or empty list.

JOB DESCRIPTION:
{doc}
"""
