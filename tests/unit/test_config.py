"""
Unit tests for configuration loading and validation.

These tests ensure:
  1. Config loads from environment variables correctly
  2. Discovery defaults match the documented tuning constants
  3. Type conversions work (e.g., strings to floats)
  4. Helpful error messages are provided for bad config
"""

import pytest
from unittest.mock import patch
from icebreaker.config import Config, validate_config


def _config(**overrides):
    values = {"FIREBASE_PROJECT_ID": "test-project"}
    values.update(overrides)
    return Config(_env_file=None, **values)


class TestConfigLoading:
    """Test configuration loading from environment."""

    @patch.dict("os.environ", {"FIREBASE_PROJECT_ID": "from-env"})
    def test_required_config_loads(self):
        """Required config fields should load from environment."""
        config = Config(_env_file=None)
        assert config.FIREBASE_PROJECT_ID == "from-env"

    @patch.dict("os.environ", {
        "FIREBASE_PROJECT_ID": "test-project",
        "DISCOVERY_RADIUS_KM": "12.5",
        "MAX_MATCHES": "5",
    })
    def test_numeric_config_conversion(self):
        """Numeric environment variables should be converted."""
        config = Config(_env_file=None)
        assert config.DISCOVERY_RADIUS_KM == 12.5
        assert isinstance(config.MAX_MATCHES, int)
        assert config.MAX_MATCHES == 5

    @patch.dict("os.environ", {"FIREBASE_PROJECT_ID": "test-project"})
    def test_discovery_defaults(self):
        """Discovery defaults should match the documented tuning."""
        config = Config(_env_file=None)
        assert config.DISCOVERY_RADIUS_KM == 50.0
        assert config.MAX_CANDIDATES == 100
        assert config.MIN_MATCH_SCORE == 0.3
        assert config.MAX_MATCHES == 20
        assert config.SCORE_FLOOR == 0.35
        assert config.SHARED_SIGNAL_BONUS == 0.1
        assert config.LOCATION_DEBOUNCE_SECONDS == 5.0
        assert config.REFRESH_INTERVAL_SECONDS == 30.0
        assert config.ACTIVE_WINDOW_MINUTES == 5

    def test_constructor_overrides_win(self):
        """Keyword overrides should replace environment values."""
        config = _config(SCORE_FLOOR=0.2)
        assert config.SCORE_FLOOR == 0.2


class TestConfigValidation:
    """Test configuration validation function."""

    def test_validate_firebase_required(self):
        """Firebase project ID must be set."""
        with patch("icebreaker.config.config", _config(FIREBASE_PROJECT_ID="")):
            with pytest.raises(ValueError, match="FIREBASE_PROJECT_ID"):
                validate_config()

    def test_validate_radius_positive(self):
        """A zero radius can never find anyone."""
        with patch("icebreaker.config.config", _config(DISCOVERY_RADIUS_KM=0)):
            with pytest.raises(ValueError, match="DISCOVERY_RADIUS_KM"):
                validate_config()

    def test_validate_floor_in_range(self):
        """Score floor must be a valid score."""
        with patch("icebreaker.config.config", _config(SCORE_FLOOR=1.5)):
            with pytest.raises(ValueError, match="SCORE_FLOOR"):
                validate_config()

    def test_validate_reports_every_problem(self):
        """All problems should be listed at once."""
        broken = _config(FIREBASE_PROJECT_ID="", MAX_MATCHES=0)
        with patch("icebreaker.config.config", broken):
            with pytest.raises(ValueError) as excinfo:
                validate_config()
        assert "FIREBASE_PROJECT_ID" in str(excinfo.value)
        assert "MAX_MATCHES" in str(excinfo.value)

    def test_validate_success_returns_status(self):
        """Successful validation should return status dict."""
        with patch("icebreaker.config.config", _config()):
            result = validate_config()
        assert isinstance(result, dict)
        assert result["firebase"] == "✓ Configured"
        assert "radius" in result
        assert "auth" in result
