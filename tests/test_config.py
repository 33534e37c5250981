"""Tests for settings loading."""

from pathlib import Path

import pytest

from core.config import (
    DEFAULT_TASK_QUEUE,
    ConfigError,
    Settings,
    TranscriptionProperties,
    _substitute_env_vars,
    load_settings,
)

ENV_VARS = (
    "SPEECH_REGION",
    "SPEECH_KEY",
    "STORAGE_CONNECTION_STRING",
    "TEMPORAL_ADDRESS",
    "TEMPORAL_NAMESPACE",
    "TEMPORAL_TASK_QUEUE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the caller's environment out of every test."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


MINIMAL_YAML = """
speech_region: westus
speech_key: secret-key
storage_connection_string: memory://
"""


class TestSubstituteEnvVars:
    """Tests for environment variable substitution."""

    def test_simple_substitution(self, monkeypatch):
        """Simple ${VAR} substitution."""
        monkeypatch.setenv("TEST_VAR", "hello")
        assert _substitute_env_vars("${TEST_VAR}") == "hello"

    def test_substitution_in_text(self, monkeypatch):
        """Substitution within surrounding text."""
        monkeypatch.setenv("NAME", "world")
        assert _substitute_env_vars("Hello ${NAME}!") == "Hello world!"

    def test_default_value_used(self, monkeypatch):
        """Default value used when var not set."""
        monkeypatch.delenv("UNSET_VAR", raising=False)
        assert _substitute_env_vars("${UNSET_VAR:-default}") == "default"

    def test_default_value_not_used_when_set(self, monkeypatch):
        """Default value not used when var is set."""
        monkeypatch.setenv("SET_VAR", "actual")
        assert _substitute_env_vars("${SET_VAR:-default}") == "actual"

    def test_unset_without_default_preserved(self, monkeypatch):
        """Unset var without default is preserved as-is."""
        monkeypatch.delenv("MISSING", raising=False)
        assert _substitute_env_vars("${MISSING}") == "${MISSING}"


class TestLoadSettingsFromFile:
    """Tests for load_settings with a YAML file."""

    def test_loads_minimal_file(self, tmp_path):
        """Required fields are enough; the rest defaults."""
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(MINIMAL_YAML)

        settings = load_settings(config_file)

        assert settings.speech_region == "westus"
        assert settings.speech_key == "secret-key"
        assert settings.storage_connection_string == "memory://"
        assert settings.results_container == "transcriptions"
        assert settings.locale == "en-US"
        assert settings.temporal.task_queue == DEFAULT_TASK_QUEUE
        assert settings.timings.deadline_seconds == 86400

    def test_submission_url_uses_region(self, tmp_path):
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(MINIMAL_YAML)

        settings = load_settings(config_file)

        assert settings.submission_url == (
            "https://westus.cris.ai/api/speechtotext/v2.0/transcriptions"
        )

    def test_nested_overrides(self, tmp_path):
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(
            MINIMAL_YAML
            + """
locale: de-DE
transcription:
  profanity_filter_mode: Removed
  add_sentiment: false
temporal:
  address: temporal.internal:7233
  task_queue: audio
timings:
  poll_interval_seconds: 30
"""
        )

        settings = load_settings(config_file)

        assert settings.locale == "de-DE"
        assert settings.transcription.profanity_filter_mode == "Removed"
        assert settings.transcription.add_sentiment is False
        assert settings.temporal.address == "temporal.internal:7233"
        assert settings.temporal.task_queue == "audio"
        assert settings.timings.poll_interval_seconds == 30

    def test_env_var_substitution_in_file(self, tmp_path, monkeypatch):
        """${VAR} references in the file are substituted."""
        monkeypatch.setenv("MY_SPEECH_KEY", "from-env")
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(
            """
speech_region: ${REGION:-eastus}
speech_key: ${MY_SPEECH_KEY}
storage_connection_string: memory://
"""
        )

        settings = load_settings(config_file)

        assert settings.speech_region == "eastus"
        assert settings.speech_key == "from-env"

    def test_environment_fills_missing_values(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SPEECH_KEY", "env-key")
        monkeypatch.setenv("TEMPORAL_ADDRESS", "remote:7233")
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(
            """
speech_region: westus
storage_connection_string: memory://
"""
        )

        settings = load_settings(config_file)

        assert settings.speech_key == "env-key"
        assert settings.temporal.address == "remote:7233"

    def test_file_wins_over_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SPEECH_REGION", "northeurope")
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(MINIMAL_YAML)

        assert load_settings(config_file).speech_region == "westus"

    def test_empty_file_uses_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SPEECH_REGION", "westus")
        monkeypatch.setenv("SPEECH_KEY", "k")
        monkeypatch.setenv("STORAGE_CONNECTION_STRING", "memory://")
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")

        assert load_settings(config_file).speech_region == "westus"


class TestLoadSettingsFromEnvironment:
    """Tests for load_settings without a file."""

    def test_environment_only(self, monkeypatch):
        monkeypatch.setenv("SPEECH_REGION", "westus")
        monkeypatch.setenv("SPEECH_KEY", "k")
        monkeypatch.setenv("STORAGE_CONNECTION_STRING", "/tmp/store")
        monkeypatch.setenv("TEMPORAL_NAMESPACE", "transcription")

        settings = load_settings()

        assert settings.storage_connection_string == "/tmp/store"
        assert settings.temporal.namespace == "transcription"

    def test_missing_required_values(self):
        with pytest.raises(ConfigError) as exc_info:
            load_settings()

        details = "\n".join(exc_info.value.details)
        assert "speech_region" in details
        assert "speech_key" in details
        assert "storage_connection_string" in details
        assert "environment" in exc_info.value.message


class TestLoadSettingsErrors:
    """Tests for error handling in load_settings."""

    def test_file_not_found(self, tmp_path):
        """Missing file raises ConfigError."""
        with pytest.raises(ConfigError) as exc_info:
            load_settings(tmp_path / "nonexistent.yaml")

        assert "not found" in str(exc_info.value)

    def test_path_is_directory(self, tmp_path):
        with pytest.raises(ConfigError) as exc_info:
            load_settings(tmp_path)

        assert "not a file" in str(exc_info.value)

    def test_invalid_yaml_syntax(self, tmp_path):
        """Invalid YAML raises ConfigError."""
        config_file = tmp_path / "bad.yaml"
        config_file.write_text("speech_region: [invalid yaml")

        with pytest.raises(ConfigError) as exc_info:
            load_settings(config_file)

        assert "Invalid YAML" in str(exc_info.value)

    def test_non_mapping(self, tmp_path):
        config_file = tmp_path / "list.yaml"
        config_file.write_text("- a\n- b\n")

        with pytest.raises(ConfigError) as exc_info:
            load_settings(config_file)

        assert "mapping" in str(exc_info.value)

    def test_invalid_value_has_details(self, tmp_path):
        """Validation errors are reported per field."""
        config_file = tmp_path / "bad.yaml"
        config_file.write_text(MINIMAL_YAML + "http_timeout_seconds: -1\n")

        with pytest.raises(ConfigError) as exc_info:
            load_settings(config_file)

        assert any(d.startswith("http_timeout_seconds") for d in exc_info.value.details)


class TestSettingsModel:
    """Tests for the settings model itself."""

    def test_key_hidden_from_repr(self):
        settings = Settings(
            speech_region="westus", speech_key="super-secret", storage_connection_string="memory://"
        )
        assert "super-secret" not in repr(settings)

    def test_properties_wire_format(self):
        assert TranscriptionProperties().to_wire() == {
            "PunctuationMode": "DictatedAndAutomatic",
            "ProfanityFilterMode": "Masked",
            "AddWordLevelTimestamps": "True",
            "AddSentiment": "True",
        }


class TestExampleSettings:
    """Tests using the example settings file shipped with the repo."""

    @pytest.fixture
    def example_settings_path(self):
        path = Path(__file__).parent.parent / "settings.example.yaml"
        if not path.exists():
            pytest.skip("Example settings not found")
        return path

    def test_loads_example_settings(self, example_settings_path, monkeypatch):
        monkeypatch.setenv("SPEECH_KEY", "k")

        settings = load_settings(example_settings_path)

        assert settings.speech_key == "k"
        assert settings.results_container == "transcriptions"
