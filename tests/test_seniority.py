from datetime import date

import pytest

from cvtailor.models.models import ComponentType, SeniorityLevel
from cvtailor.services.gateways import InMemoryComponentRepository
from cvtailor.services.seniority import (
    SeniorityAnalyzer,
    education_level,
    level_for_years,
    parse_level,
    total_years,
)

from conftest import make_component

TODAY = date(2024, 1, 1)


class TestParseLevel:
    """Lenient parsing of JD seniority strings"""

    @pytest.mark.parametrize("text,expected", [
        ("Senior", SeniorityLevel.SENIOR),
        ("Sr. Software Engineer", SeniorityLevel.SENIOR),
        ("Staff Engineer", SeniorityLevel.LEAD),
        ("Team Lead", SeniorityLevel.LEAD),
        ("Principal", SeniorityLevel.PRINCIPAL),
        ("Distinguished Engineer", SeniorityLevel.PRINCIPAL),
        ("Mid-Level", SeniorityLevel.MID),
        ("Entry level", SeniorityLevel.JUNIOR),
        ("Jr. Developer", SeniorityLevel.JUNIOR),
        ("Internship", SeniorityLevel.INTERN),
        ("5+ years of experience", SeniorityLevel.SENIOR),
        ("3-5 years", SeniorityLevel.MID),
    ])
    def test_recognised_levels(self, text, expected):
        assert parse_level(text) == expected

    @pytest.mark.parametrize("text", [None, "", "   ", "Rockstar Ninja", "misleading"])
    def test_unrecognised_levels(self, text):
        assert parse_level(text) is None


class TestMetrics:
    """Years, levels and education estimates"""

    @pytest.mark.parametrize("years,expected", [
        (0, SeniorityLevel.INTERN),
        (0.9, SeniorityLevel.INTERN),
        (1, SeniorityLevel.JUNIOR),
        (2.9, SeniorityLevel.JUNIOR),
        (3, SeniorityLevel.MID),
        (5, SeniorityLevel.SENIOR),
        (8, SeniorityLevel.LEAD),
        (12, SeniorityLevel.PRINCIPAL),
    ])
    def test_level_for_years(self, years, expected):
        assert level_for_years(years) == expected

    def test_total_years_counts_open_ended_roles_until_today(self):
        experiences = [
            make_component(ComponentType.EXPERIENCE, "Dev", start_date=date(2020, 1, 1), end_date=date(2022, 7, 1)),
            make_component(ComponentType.EXPERIENCE, "Lead", start_date=date(2023, 1, 1)),
            make_component(ComponentType.EXPERIENCE, "Undated"),
        ]

        assert total_years(experiences, TODAY) == 3.5

    @pytest.mark.parametrize("title,expected", [
        ("PhD Physics", 4.0),
        ("MSc Data Science", 3.0),
        ("BSc Computer Science", 2.0),
        ("Associate Degree", 1.0),
        ("Coursework", 0.5),
    ])
    def test_education_level(self, title, expected):
        assert education_level([make_component(ComponentType.EDUCATION, title)]) == expected

    def test_no_education(self):
        assert education_level([]) == 0.0


class TestSeniorityAnalyzer:
    """Rule-based analysis and comparison"""

    @pytest.mark.asyncio
    async def test_analyze(self):
        repository = InMemoryComponentRepository({"u": [
            make_component(ComponentType.EXPERIENCE, "Team Lead", organization="Acme",
                           start_date=date(2016, 1, 1), end_date=date(2020, 1, 1)),
            make_component(ComponentType.EXPERIENCE, "Engineer", organization="Initech",
                           start_date=date(2020, 1, 1)),
            make_component(ComponentType.EDUCATION, "BSc Computer Science"),
        ]})
        analyzer = SeniorityAnalyzer(repository, today=lambda: TODAY)

        analysis = await analyzer.analyze("u")

        assert analysis.level == SeniorityLevel.LEAD
        assert analysis.metrics.total_years == 8.0
        assert analysis.metrics.leadership_count == 1
        assert analysis.metrics.education_level == 2.0
        assert 0 < analysis.confidence <= 100

    @pytest.mark.asyncio
    async def test_analyze_without_components(self):
        analyzer = SeniorityAnalyzer(InMemoryComponentRepository())

        analysis = await analyzer.analyze("nobody")

        assert analysis.level == SeniorityLevel.INTERN
        assert analysis.confidence == 100

    @pytest.mark.parametrize("user,jd,gap,is_match,phrase", [
        (SeniorityLevel.SENIOR, SeniorityLevel.SENIOR, 0, True, "Perfect match"),
        (SeniorityLevel.LEAD, SeniorityLevel.SENIOR, 1, True, "Good fit"),
        (SeniorityLevel.MID, SeniorityLevel.SENIOR, -1, True, "Stretch opportunity"),
        (SeniorityLevel.PRINCIPAL, SeniorityLevel.JUNIOR, 4, False, "overqualified"),
        (SeniorityLevel.INTERN, SeniorityLevel.SENIOR, -3, False, "below the required level"),
    ])
    def test_compare(self, user, jd, gap, is_match, phrase):
        result = SeniorityAnalyzer.compare(user, jd)

        assert result.gap == gap
        assert result.is_match is is_match
        assert phrase in result.advice

    @pytest.mark.asyncio
    async def test_match_skips_unknown_levels(self):
        analyzer = SeniorityAnalyzer(InMemoryComponentRepository())

        assert await analyzer.match("u", "Wizard") is None
        result = await analyzer.match("u", "Junior")
        assert result.jd_level == SeniorityLevel.JUNIOR
        assert result.user_level == SeniorityLevel.INTERN
