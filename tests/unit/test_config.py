"""
Unit tests for Smolgen configuration system
Tests defaults, environment loading and configuration methods
"""
import pytest
import tempfile
from pathlib import Path
from unittest.mock import patch


@pytest.mark.unit
class TestConfigurationSystem:
    """Test core configuration functionality"""

    def test_default_configuration_values(self):
        """Test default workflow settings"""
        from smolgen.core.config import SmolgenSettings

        settings = SmolgenSettings()

        assert settings.STEP_RETRY_LIMIT == 5
        assert settings.STEP_RETRY_DELAY_SECONDS == 10.0
        assert settings.STEP_TIMEOUT_SECONDS == 300.0
        assert settings.IMAGE_RETRY_LIMIT == 10

        assert settings.FINGERPRINT_MIN_BYTES == 32768
        assert settings.FINGERPRINT_HASH_BYTES == 16384
        assert settings.FINGERPRINT_TIMEOUT_SECONDS == 15.0
        assert settings.MAX_FINGERPRINT_ATTEMPTS == 5

        assert "postgresql+asyncpg://" in settings.DATABASE_URL
        assert "redis://" in settings.REDIS_URL

    def test_environment_overrides(self):
        """Test settings are read from the environment"""
        from smolgen.core.config import SmolgenSettings

        with patch.dict("os.environ", {"STEP_RETRY_LIMIT": "2", "PIXELLAB_API_KEY": "pk-test"}):
            settings = SmolgenSettings()

        assert settings.STEP_RETRY_LIMIT == 2
        assert settings.PIXELLAB_API_KEY == "pk-test"

    def test_backoff_validation(self):
        """Test backoff strategy validation"""
        from smolgen.core.config import SmolgenSettings

        settings = SmolgenSettings()

        assert settings.validate_backoff("exponential") == True
        assert settings.validate_backoff("Constant") == True
        assert settings.validate_backoff("linear") == True
        assert settings.validate_backoff("random") == False
        assert settings.validate_backoff("") == False

    def test_configuration_methods(self):
        """Test configuration method outputs"""
        from smolgen.core.config import SmolgenSettings

        settings = SmolgenSettings()

        step_config = settings.get_step_config()
        assert step_config == {
            "retries": 5,
            "delay": 10.0,
            "backoff": "exponential",
            "timeout": 300.0,
        }

        polling_config = settings.get_polling_config()
        assert polling_config["streaming_warmup"] == 45.0
        assert polling_config["completion_warmup"] == 60.0
        assert polling_config["streaming_retries"] == 5
        assert polling_config["completion_retries"] == 6
        assert polling_config["max_fingerprint_attempts"] == 5

    def test_directory_creation(self):
        """Test media and log directories are created on load"""
        from smolgen.core.config import SmolgenSettings

        with tempfile.TemporaryDirectory() as temp_dir:
            temp_path = Path(temp_dir)

            SmolgenSettings(
                MEDIA_PATH=str(temp_path / "media"),
                LOG_FILE_PATH=str(temp_path / "logs" / "smolgen.log")
            )

            assert (temp_path / "media").is_dir()
            assert (temp_path / "logs").is_dir()

    def test_get_settings_is_cached(self):
        """Test cached settings accessor"""
        from smolgen.core.config import get_settings

        assert get_settings() is get_settings()
