import pytest
from pydantic import ValidationError as PydanticValidationError

from cvtailor.models.models import MatchQuality
from cvtailor.models.settings import (
    CategoryWeights,
    EmbeddingSettings,
    MatchingSettings,
    MatchQualityThresholds,
    OptimizerSettings,
    VariantSettings,
)
from cvtailor.utils.exceptions import (
    ConfigurationError,
    DecompositionError,
    DimensionMismatchError,
    EmbeddingError,
    RepositoryError,
    ValidationError,
    map_to_http_exception,
)


class TestCategoryWeights:
    def test_defaults(self):
        assert CategoryWeights().as_dict() == {
            "experience": 0.4, "skills": 0.3, "education": 0.2, "projects": 0.1,
        }

    def test_weights_must_sum_to_one(self):
        with pytest.raises(PydanticValidationError):
            CategoryWeights(experience=0.5, skills=0.5, education=0.5, projects=0.0)

    def test_custom_weights(self):
        weights = CategoryWeights(experience=0.25, skills=0.25, education=0.25, projects=0.25)
        assert sum(weights.as_dict().values()) == pytest.approx(1.0)


class TestMatchQualityThresholds:
    def test_default_bands(self):
        thresholds = MatchQualityThresholds()

        assert thresholds.band_for(100) == MatchQuality.EXCELLENT
        assert thresholds.band_for(65) == MatchQuality.GOOD
        assert thresholds.band_for(40) == MatchQuality.FAIR
        assert thresholds.band_for(39) == MatchQuality.WEAK
        assert thresholds.band_for(0) == MatchQuality.NONE
        assert thresholds.highest_unmatched_score() == 39

    def test_fractional_fair_bound(self):
        assert MatchQualityThresholds(fair=40.5).highest_unmatched_score() == 40

    def test_bounds_must_decrease(self):
        with pytest.raises(PydanticValidationError):
            MatchQualityThresholds(excellent=60, good=65)


class TestSettings:
    def test_optimizer_defaults(self):
        settings = OptimizerSettings()

        assert settings.cache_ttl_seconds == 300
        assert settings.cache_max_entries == 100
        assert settings.min_similarity == 0.3
        assert settings.missing_skill_similarity == 0.75

    def test_negative_acceptance_is_rejected(self):
        with pytest.raises(PydanticValidationError):
            MatchingSettings(min_acceptance_similarity=-0.1)

    def test_negative_category_cap_is_rejected(self):
        with pytest.raises(PydanticValidationError):
            VariantSettings(max_per_category={"skills": -1})

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("EMBED_MODEL", "mxbai-embed-large")
        monkeypatch.setenv("EMBED_DIMENSION", "1024")
        monkeypatch.setenv("MATCH_CACHE_TTL", "60")
        monkeypatch.setenv("MATCH_BAND_FAIR", "50")

        assert EmbeddingSettings.from_env().dimension == 1024
        assert EmbeddingSettings.from_env().model_name == "mxbai-embed-large"
        assert OptimizerSettings.from_env().cache_ttl_seconds == 60
        assert MatchingSettings.from_env().thresholds.highest_unmatched_score() == 49

    def test_unparseable_env_value(self, monkeypatch):
        monkeypatch.setenv("MATCH_TOP_K", "fifty")

        with pytest.raises(ConfigurationError) as exc_info:
            OptimizerSettings.from_env()
        assert exc_info.value.details["config_key"] == "MATCH_TOP_K"

    def test_invalid_env_weights(self, monkeypatch):
        monkeypatch.setenv("MATCH_WEIGHT_EXPERIENCE", "0.9")

        with pytest.raises(ConfigurationError):
            OptimizerSettings.from_env()


class TestExceptions:
    @pytest.mark.parametrize("exc,status", [
        (ValidationError("bad", field="user_id"), 400),
        (ConfigurationError("bad"), 400),
        (DecompositionError("bad"), 422),
        (EmbeddingError("bad"), 502),
        (RepositoryError("bad"), 502),
        (DimensionMismatchError("bad"), 500),
    ])
    def test_http_mapping(self, exc, status):
        http_exc = map_to_http_exception(exc)

        assert http_exc.status_code == status
        assert http_exc.detail["message"] == "bad"

    def test_to_dict(self):
        cause = ConnectionError("refused")
        exc = EmbeddingError("provider down", model_name="nomic-embed-text", cause=cause)

        data = exc.to_dict()

        assert data["error_code"] == "EMBEDDING_ERROR"
        assert data["details"] == {"model_name": "nomic-embed-text"}
        assert data["cause"] == "refused"

    def test_validation_details(self):
        exc = ValidationError("top_k must be positive", field="top_k", value=0)
        assert exc.details == {"field": "top_k", "invalid_value": "0"}
