import importlib
import logging
import warnings

import pytest
from pydantic import ValidationError
from pythonjsonlogger import jsonlogger

from examstats.core.config import Settings
from examstats.core.exceptions import ExamStatsError, InvalidConfigError
from examstats.core.logging_config import configure_logging
from examstats.models.analysis import AnalysisConfig


def test_default_analysis_config():
    config = AnalysisConfig()
    assert config.min_sample_size == 10
    assert config.confidence_level == 0.95
    assert config.alpha == pytest.approx(0.05)
    assert config.significance_test == "upper_lower"
    assert config.include_distractor_analysis


@pytest.mark.parametrize("kwargs", [
    {"confidence_level": 1.0},
    {"confidence_level": 0.0},
    {"min_sample_size": -1},
    {"group_fraction": 0.6},
    {"group_fraction": 0.0},
    {"significance_test": "t_test"},
])
def test_invalid_analysis_config_raises(kwargs):
    with pytest.raises(InvalidConfigError):
        AnalysisConfig(**kwargs)


def test_invalid_config_error_is_a_value_error():
    assert issubclass(InvalidConfigError, ValueError)
    assert issubclass(InvalidConfigError, ExamStatsError)


def test_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("ANALYSIS_MIN_SAMPLE_SIZE", "25")
    monkeypatch.setenv("ANALYSIS_CONFIDENCE_LEVEL", "0.99")
    monkeypatch.setenv("ANALYSIS_SIGNIFICANCE_TEST", "CHANCE")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    settings = Settings(_env_file=None)

    assert settings.ANALYSIS_MIN_SAMPLE_SIZE == 25
    assert settings.ANALYSIS_SIGNIFICANCE_TEST == "chance"
    assert settings.LOG_LEVEL == "DEBUG"

    config = AnalysisConfig.from_settings(settings)
    assert config.min_sample_size == 25
    assert config.confidence_level == 0.99
    assert config.significance_test == "chance"


def test_unknown_significance_test_setting_is_rejected(monkeypatch):
    monkeypatch.setenv("ANALYSIS_SIGNIFICANCE_TEST", "anova")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_from_settings_overrides_skip_none():
    settings = Settings(_env_file=None)
    config = AnalysisConfig.from_settings(settings, min_sample_size=3, confidence_level=None)
    assert config.min_sample_size == 3
    assert config.confidence_level == settings.ANALYSIS_CONFIDENCE_LEVEL


def test_environment_helpers():
    assert Settings(_env_file=None, ENVIRONMENT="production").is_production()
    assert Settings(_env_file=None, ENVIRONMENT="testing").is_testing()


def test_configure_logging_json_format():
    root = logging.getLogger()
    saved = (list(root.handlers), root.level)
    try:
        configure_logging(Settings(_env_file=None, LOG_FORMAT="json", LOG_LEVEL="warning"))
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, jsonlogger.JsonFormatter)
        assert root.level == logging.WARNING
    finally:
        root.handlers[:] = saved[0]
        root.setLevel(saved[1])


def test_json_formatter_module_imports_without_deprecation():
    with warnings.catch_warnings():
        warnings.simplefilter("error", DeprecationWarning)
        importlib.reload(jsonlogger)
