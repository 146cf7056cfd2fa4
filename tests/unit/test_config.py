"""Tests for configuration loading and validation."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from repair_loop.config.loader import load_config, substitute_env_vars, validate_config
from repair_loop.config.schema import (
    AnthropicConfig,
    FeedbackConfig,
    LLMConfig,
    RepairConfig,
    RetryStrategiesConfig,
    TemperaturesConfig,
    TokenLimitsConfig,
)

EXAMPLE_CONFIG = Path(__file__).parents[2] / "config" / "config.example.yaml"


def _config(**feedback: object) -> RepairConfig:
    return RepairConfig(
        feedback=FeedbackConfig(**feedback),
        llm=LLMConfig(anthropic=AnthropicConfig(api_key="sk-ant-test")),
    )


class TestSubstituteEnvVars:
    """Test ${NAME} expansion in configuration text."""

    def test_single_reference(self, monkeypatch: pytest.MonkeyPatch):
        """Test expanding one reference."""
        monkeypatch.setenv("REPAIR_KEY", "sk-ant-test")
        assert substitute_env_vars("api_key: ${REPAIR_KEY}") == "api_key: sk-ant-test"

    def test_several_references_on_one_line(self, monkeypatch: pytest.MonkeyPatch):
        """Test that every reference is expanded."""
        monkeypatch.setenv("REPAIR_MODEL", "claude-3-5-sonnet")
        monkeypatch.setenv("REPAIR_RETRIES", "4")
        assert substitute_env_vars("${REPAIR_MODEL}/${REPAIR_RETRIES}") == "claude-3-5-sonnet/4"

    def test_unset_reference_raises(self, monkeypatch: pytest.MonkeyPatch):
        """Test that an unset variable without a default is an error."""
        monkeypatch.delenv("REPAIR_UNSET", raising=False)
        with pytest.raises(ValueError, match="Environment variable REPAIR_UNSET not found"):
            substitute_env_vars("api_key: ${REPAIR_UNSET}")

    def test_text_without_references(self):
        """Test that plain YAML is returned unchanged."""
        text = "feedback:\n  max_retries: 5\n"
        assert substitute_env_vars(text) == text

    def test_dollar_without_braces_untouched(self):
        """Test that shell-style $NAME is not expanded."""
        assert substitute_env_vars("cost: $HOME") == "cost: $HOME"

    def test_default_used_when_unset(self):
        """Test the ${NAME:-default} fallback."""
        assert substitute_env_vars("model: ${UNSET_MODEL:-claude-3-5-haiku}") == (
            "model: claude-3-5-haiku"
        )

    def test_set_var_wins_over_default(self, monkeypatch: pytest.MonkeyPatch):
        """Test that a set variable ignores its default."""
        monkeypatch.setenv("REPAIR_MODEL", "claude-3-opus")
        assert substitute_env_vars("${REPAIR_MODEL:-fallback}") == "claude-3-opus"

    def test_empty_default(self):
        """Test that an empty default is allowed."""
        assert substitute_env_vars("[${UNSET_VALUE:-}]") == "[]"


class TestFeedbackConfig:
    """Test FeedbackConfig defaults and validation."""

    def test_defaults(self):
        """Test the standard repair policy."""
        config = FeedbackConfig()

        assert config.max_retries == 5
        assert config.retry_strategies.incremental_threshold == 3
        assert config.retry_strategies.context_window_lines == 10
        assert config.retry_strategies.min_code_length_for_incremental == 50
        assert config.retry_strategies.same_error_threshold == 2
        assert config.token_limits.max_fix_tokens == 1500
        assert config.token_limits.expanded_context_lines == 20
        assert config.token_limits.full_regeneration_tokens == 8192
        assert config.timeouts.llm_timeout_ms == 60000
        assert config.features.enable_incremental_fixes is True
        assert config.fix_history_size == 20
        assert config.disallowed_output_calls == ["require("]

    def test_default_error_priority(self):
        """Test that syntax errors are fixed first."""
        config = FeedbackConfig()
        assert config.error_priority == {
            "syntax": 1,
            "semantic": 2,
            "environment": 3,
            "capability": 4,
            "unknown": 5,
        }

    def test_unknown_priority_category_rejected(self):
        """Test that error_priority only accepts known categories."""
        with pytest.raises(ValidationError, match="Unknown error category"):
            FeedbackConfig(error_priority={"typo": 1})

    def test_max_retries_bounds(self):
        """Test max_retries validation bounds."""
        FeedbackConfig(max_retries=1)
        FeedbackConfig(max_retries=20)

        with pytest.raises(ValidationError):
            FeedbackConfig(max_retries=0)
        with pytest.raises(ValidationError):
            FeedbackConfig(max_retries=21)

    def test_full_budget_must_cover_incremental(self):
        """Test that full regeneration gets at least twice the fix budget."""
        TokenLimitsConfig(max_fix_tokens=1000, full_regeneration_tokens=2000)

        with pytest.raises(ValidationError, match="full_regeneration_tokens"):
            TokenLimitsConfig(max_fix_tokens=1500, full_regeneration_tokens=2000)

    def test_temperature_bounds(self):
        """Test that temperatures stay within [0, 1]."""
        with pytest.raises(ValidationError):
            TemperaturesConfig(targeted=1.5)

    def test_nested_dicts_accepted(self):
        """Test that nested sections can be given as plain mappings."""
        config = FeedbackConfig(retry_strategies={"same_error_threshold": 3})

        assert isinstance(config.retry_strategies, RetryStrategiesConfig)
        assert config.retry_strategies.same_error_threshold == 3
        assert config.retry_strategies.incremental_threshold == 3


class TestAnthropicConfig:
    """Test AnthropicConfig validation."""

    def test_defaults(self):
        """Test default model and retry budget."""
        config = AnthropicConfig(api_key="sk-ant-test")
        assert config.model.startswith("claude-")
        assert config.max_retries == 3

    def test_empty_key_rejected(self):
        """Test that a blank api key is rejected."""
        with pytest.raises(ValidationError, match="api_key must not be empty"):
            AnthropicConfig(api_key="   ")


class TestRepairConfig:
    """Test the root settings object."""

    def test_defaults(self):
        """Test default sections."""
        config = RepairConfig()

        assert config.feedback.max_retries == 5
        assert config.llm.provider == "anthropic"
        assert config.llm.anthropic is None
        assert config.logging.level == "INFO"
        assert config.logging.format == "json"
        assert config.logging.file.enabled is False

    def test_invalid_log_level_rejected(self):
        """Test that unknown log levels are rejected."""
        with pytest.raises(ValidationError):
            RepairConfig(logging={"level": "VERBOSE"})


class TestLoadConfig:
    """Test configuration loading from YAML."""

    def test_file_overrides_defaults(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        """Test that file values override defaults section by section."""
        monkeypatch.setenv("REPAIR_TEST_KEY", "sk-ant-test")

        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            """
feedback:
  max_retries: 4
  retry_strategies:
    incremental_threshold: 2
  temperatures:
    targeted: 0.1

llm:
  provider: anthropic
  anthropic:
    api_key: ${REPAIR_TEST_KEY}
    model: "claude-3-5-sonnet-20241022"

logging:
  level: DEBUG
  format: console
"""
        )

        config = load_config(config_file)

        assert config.feedback.max_retries == 4
        assert config.feedback.retry_strategies.incremental_threshold == 2
        assert config.feedback.temperatures.targeted == 0.1
        assert config.feedback.temperatures.incremental == 0.3
        assert config.llm.anthropic is not None
        assert config.llm.anthropic.api_key == "sk-ant-test"
        assert config.logging.level == "DEBUG"
        assert config.logging.format == "console"

    def test_missing_file(self, tmp_path: Path):
        """Test that an explicit path must exist."""
        with pytest.raises(FileNotFoundError, match="Configuration file not found"):
            load_config(tmp_path / "absent.yaml")

    def test_unset_reference_in_file(self, tmp_path: Path):
        """Test that an unset reference in the file is reported."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            """
llm:
  anthropic:
    api_key: ${MISSING_VAR}
"""
        )

        with pytest.raises(ValueError, match="Environment variable MISSING_VAR not found"):
            load_config(config_file)

    def test_reference_in_comment_ignored(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        """Test that only values are expanded, never comments."""
        monkeypatch.delenv("NAME", raising=False)
        monkeypatch.setenv("REPAIR_TEST_KEY", "sk-ant-test")
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            """
# Values like ${NAME} are read from the environment
llm:
  anthropic:
    api_key: ${REPAIR_TEST_KEY}  # or ${NAME}
"""
        )

        config = load_config(config_file)

        assert config.llm.anthropic is not None
        assert config.llm.anthropic.api_key == "sk-ant-test"

    def test_reference_in_numeric_value(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        """Test that an expanded value is still coerced by the schema."""
        monkeypatch.setenv("REPAIR_TEST_KEY", "sk-ant-test")
        monkeypatch.setenv("REPAIR_TEST_RETRIES", "7")
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            """
feedback:
  max_retries: ${REPAIR_TEST_RETRIES}
llm:
  anthropic:
    api_key: ${REPAIR_TEST_KEY}
"""
        )

        assert load_config(config_file).feedback.max_retries == 7

    def test_load_empty_file_fails_validation(self, tmp_path: Path):
        """Test that an empty file gets defaults, which lack an api key."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")

        with pytest.raises(ValueError, match="anthropic config missing"):
            load_config(config_file)

    def test_load_from_environment_only(self, monkeypatch: pytest.MonkeyPatch):
        """Test that without a file the environment supplies settings."""
        monkeypatch.setenv("REPAIR_LOOP_LLM__ANTHROPIC__API_KEY", "sk-ant-from-env")
        monkeypatch.setenv("REPAIR_LOOP_FEEDBACK__MAX_RETRIES", "6")

        config = load_config()

        assert config.llm.anthropic is not None
        assert config.llm.anthropic.api_key == "sk-ant-from-env"
        assert config.feedback.max_retries == 6

    def test_environment_fills_keys_missing_from_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ):
        """Test that the environment supplies what the file leaves out."""
        monkeypatch.setenv("REPAIR_LOOP_LLM__ANTHROPIC__API_KEY", "sk-ant-from-env")
        config_file = tmp_path / "config.yaml"
        config_file.write_text("feedback:\n  max_retries: 4\n")

        config = load_config(config_file)

        assert config.feedback.max_retries == 4
        assert config.llm.anthropic is not None
        assert config.llm.anthropic.api_key == "sk-ant-from-env"

    def test_example_config_loads(self, monkeypatch: pytest.MonkeyPatch):
        """Test that the shipped example matches the defaults."""
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-example")
        monkeypatch.delenv("REPAIR_MODEL", raising=False)

        config = load_config(EXAMPLE_CONFIG)

        assert config.feedback == FeedbackConfig()
        assert config.llm.anthropic is not None
        assert config.llm.anthropic.model == AnthropicConfig(api_key="x").model

    def test_load_config_schema_error(self, tmp_path: Path):
        """Test that schema violations surface as ValidationError."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("feedback:\n  max_retries: 0\n")

        with pytest.raises(ValidationError):
            load_config(config_file)


class TestValidateConfig:
    """Test cross-field configuration validation."""

    def test_anthropic_provider_without_anthropic_config(self):
        """Test that the anthropic provider requires its config."""
        with pytest.raises(ValueError, match="Anthropic provider selected but anthropic config"):
            validate_config(RepairConfig())

    def test_incremental_threshold_must_leave_room(self):
        """Test that targeted fixes cannot consume every attempt."""
        config = _config(max_retries=3, retry_strategies={"incremental_threshold": 3})

        with pytest.raises(ValueError, match="incremental_threshold must be lower"):
            validate_config(config)

    def test_expanded_window_not_smaller(self):
        """Test that later attempts never see less context."""
        config = _config(
            retry_strategies={"context_window_lines": 30},
            token_limits={"expanded_context_lines": 20},
        )

        with pytest.raises(ValueError, match="expanded_context_lines"):
            validate_config(config)

    def test_valid_config_passes(self):
        """Test that valid configuration passes validation."""
        # Should not raise
        validate_config(_config())
