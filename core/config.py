"""Configuration loading for the transcription worker and client."""

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from .models import OrchestrationTimings

DEFAULT_TEMPORAL_ADDRESS = "localhost:7233"
DEFAULT_NAMESPACE = "default"
DEFAULT_TASK_QUEUE = "batch-transcription-queue"

# Top-level settings that may come from the environment when absent from the file
ENV_FALLBACKS = {
    "speech_region": "SPEECH_REGION",
    "speech_key": "SPEECH_KEY",
    "storage_connection_string": "STORAGE_CONNECTION_STRING",
}

TEMPORAL_ENV_FALLBACKS = {
    "address": "TEMPORAL_ADDRESS",
    "namespace": "TEMPORAL_NAMESPACE",
    "task_queue": "TEMPORAL_TASK_QUEUE",
}


class TranscriptionProperties(BaseModel):
    """Provider options sent with every submission."""

    punctuation_mode: str = Field("DictatedAndAutomatic", description="PunctuationMode")
    profanity_filter_mode: str = Field("Masked", description="ProfanityFilterMode")
    add_word_level_timestamps: bool = Field(True, description="AddWordLevelTimestamps")
    add_sentiment: bool = Field(True, description="AddSentiment")

    def to_wire(self) -> dict[str, str]:
        """Render as the string-valued `properties` map the provider expects."""
        return {
            "PunctuationMode": self.punctuation_mode,
            "ProfanityFilterMode": self.profanity_filter_mode,
            "AddWordLevelTimestamps": str(self.add_word_level_timestamps),
            "AddSentiment": str(self.add_sentiment),
        }


class TemporalSettings(BaseModel):
    """Where the worker and client find the Temporal service."""

    address: str = Field(DEFAULT_TEMPORAL_ADDRESS, description="Temporal server address")
    namespace: str = Field(DEFAULT_NAMESPACE, description="Temporal namespace")
    task_queue: str = Field(DEFAULT_TASK_QUEUE, description="Task queue for workflows and activities")


class Settings(BaseModel):
    """Complete configuration for one deployment."""

    speech_region: str = Field(..., min_length=1, description="Provider region, e.g. westus")
    speech_key: str = Field(..., min_length=1, repr=False, description="Provider subscription key")
    storage_connection_string: str = Field(
        ..., min_length=1, description="Where transcription outputs are written"
    )
    results_container: str = Field("transcriptions", min_length=1)
    locale: str = Field("en-US", description="Locale of the submitted audio")
    transcription: TranscriptionProperties = Field(default_factory=TranscriptionProperties)
    http_timeout_seconds: float = Field(30.0, gt=0, le=600)
    temporal: TemporalSettings = Field(default_factory=TemporalSettings)
    timings: OrchestrationTimings = Field(default_factory=OrchestrationTimings)

    @property
    def submission_url(self) -> str:
        return f"https://{self.speech_region}.cris.ai/api/speechtotext/v2.0/transcriptions"


class ConfigError(Exception):
    """Error loading or validating configuration."""

    def __init__(self, message: str, details: list[str] | None = None):
        self.message = message
        self.details = details or []
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if not self.details:
            return self.message
        detail_str = "\n  - ".join(self.details)
        return f"{self.message}\n  - {detail_str}"


def _substitute_env_vars(value: str) -> str:
    """Substitute environment variables in a string.

    Supports ${VAR} and ${VAR:-default} syntax.

    Args:
        value: String potentially containing env var references

    Returns:
        String with env vars substituted
    """
    # Pattern: ${VAR} or ${VAR:-default}
    pattern = r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}"

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        default = match.group(2)
        env_value = os.environ.get(var_name)

        if env_value is not None:
            return env_value
        if default is not None:
            return default
        # Return original if no value and no default
        return match.group(0)

    return re.sub(pattern, replacer, value)


def _substitute_env_vars_recursive(obj):
    """Recursively substitute env vars in a data structure."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _substitute_env_vars_recursive(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_substitute_env_vars_recursive(item) for item in obj]
    else:
        return obj


def _read_yaml(path: Path) -> dict:
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    if not path.is_file():
        raise ConfigError(f"Path is not a file: {path}")

    try:
        with open(path, "r") as f:
            raw_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {path}", [str(e)])

    if raw_data is None:
        return {}

    if not isinstance(raw_data, dict):
        raise ConfigError(
            f"Configuration must be a YAML mapping, got {type(raw_data).__name__}"
        )

    return _substitute_env_vars_recursive(raw_data)


def _apply_env_fallbacks(data: dict) -> dict:
    """Fill settings missing from the file with environment variables."""
    for key, env_name in ENV_FALLBACKS.items():
        env_value = os.environ.get(env_name)
        if key not in data and env_value:
            data[key] = env_value

    temporal = data.get("temporal") or {}
    if not isinstance(temporal, dict):
        return data
    for key, env_name in TEMPORAL_ENV_FALLBACKS.items():
        env_value = os.environ.get(env_name)
        if key not in temporal and env_value:
            temporal[key] = env_value
    if temporal:
        data["temporal"] = temporal

    return data


def load_settings(path: Path | None = None) -> Settings:
    """Load and validate settings.

    Values come from the YAML file when one is given (with ${VAR} and
    ${VAR:-default} substitution), then from SPEECH_REGION, SPEECH_KEY,
    STORAGE_CONNECTION_STRING and TEMPORAL_* environment variables for
    anything the file leaves out.

    Args:
        path: Optional path to a YAML configuration file

    Returns:
        Validated Settings object

    Raises:
        ConfigError: If the file cannot be loaded or validation fails
    """
    data = _read_yaml(path) if path is not None else {}
    data = _apply_env_fallbacks(data)

    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            errors.append(f"{loc}: {msg}")
        source = path if path is not None else "environment"
        raise ConfigError(f"Invalid configuration in {source}", errors)
