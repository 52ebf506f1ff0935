"""
Tests for validator settings.
"""

import pytest

from odatavalidator.engine.settings import ValidatorSettings, parse_levels
from odatavalidator.engine.types import ConformanceLevel


class TestValidatorSettings:
    """Tests for ValidatorSettings."""

    def test_defaults(self):
        settings = ValidatorSettings()
        assert settings.timeout == 8.0
        assert settings.max_payload_size == 1024 * 1024
        assert settings.verify_tls is True
        assert settings.levels == (ConformanceLevel.MINIMAL,)

    @pytest.mark.parametrize("kwargs", [{"timeout": 0}, {"max_payload_size": -1}])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            ValidatorSettings(**kwargs)

    def test_from_env(self):
        settings = ValidatorSettings.from_env({
            "ODATA_VALIDATOR_TIMEOUT": "2.5",
            "ODATA_VALIDATOR_MAX_PAYLOAD": "2048",
            "ODATA_VALIDATOR_VERIFY_TLS": "no",
            "ODATA_VALIDATOR_USER_AGENT": "checker/1",
            "ODATA_VALIDATOR_LEVELS": "minimal, advanced",
        })
        assert settings.timeout == 2.5
        assert settings.max_payload_size == 2048
        assert settings.verify_tls is False
        assert settings.user_agent == "checker/1"
        assert settings.levels == (ConformanceLevel.MINIMAL, ConformanceLevel.ADVANCED)

    def test_from_empty_env(self):
        assert ValidatorSettings.from_env({}) == ValidatorSettings()

    @pytest.mark.parametrize("name, value, message", [
        ("ODATA_VALIDATOR_TIMEOUT", "soon", "not a number"),
        ("ODATA_VALIDATOR_MAX_PAYLOAD", "1.5", "not an integer"),
        ("ODATA_VALIDATOR_VERIFY_TLS", "maybe", "not a boolean"),
        ("ODATA_VALIDATOR_LEVELS", "expert", "Unknown conformance level"),
    ])
    def test_from_env_invalid(self, name, value, message):
        with pytest.raises(ValueError, match=message):
            ValidatorSettings.from_env({name: value})

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("ODATA_VALIDATOR_TIMEOUT", "4")
        assert ValidatorSettings.from_env().timeout == 4.0


class TestParseLevels:
    """Tests for parse_levels."""

    def test_case_and_blanks(self):
        assert parse_levels(["Intermediate", " ", "ADVANCED"]) == (
            ConformanceLevel.INTERMEDIATE, ConformanceLevel.ADVANCED,
        )

    def test_unknown(self):
        with pytest.raises(ValueError, match="expected one of"):
            parse_levels(["basic"])
