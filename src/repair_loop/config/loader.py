"""YAML configuration loading.

String values may reference the environment as ``${NAME}`` or, with a
fallback, ``${NAME:-default}``. Keys absent from the file fall back to
``REPAIR_LOOP_*`` environment variables and then to schema defaults.
"""

import os
import re
from pathlib import Path
from typing import Any

import structlog
import yaml

from .schema import RepairConfig

log = structlog.get_logger()

ENV_REFERENCE_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def substitute_env_vars(text: str) -> str:
    """Expand ``${NAME}`` and ``${NAME:-default}`` references.

    Raises:
        ValueError: If a variable without a default is not set
    """

    def expand(match: re.Match[str]) -> str:
        name, default = match.group(1), match.group(2)
        value = os.environ.get(name, default)
        if value is None:
            raise ValueError(f"Environment variable {name} not found")
        return value

    return ENV_REFERENCE_PATTERN.sub(expand, text)


def _substitute_in_values(data: Any) -> Any:
    # Only parsed scalars are expanded; YAML comments never reach here
    if isinstance(data, dict):
        return {key: _substitute_in_values(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_substitute_in_values(item) for item in data]
    if isinstance(data, str):
        return substitute_env_vars(data)
    return data


def load_config(path: Path | None = None) -> RepairConfig:
    """Load and validate the repair loop configuration.

    Args:
        path: YAML file to read. When None, only environment variables and
            defaults are used.

    Returns:
        Validated RepairConfig

    Raises:
        FileNotFoundError: If path is given but does not exist
        ValueError: If a referenced variable is missing or limits conflict
        pydantic.ValidationError: If values do not match the schema
    """
    if path is None:
        config = RepairConfig()
    else:
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        data = _substitute_in_values(yaml.safe_load(path.read_text()) or {})
        config = RepairConfig(**data)

    validate_config(config)
    log.debug(
        "configuration_loaded",
        path=str(path) if path else None,
        max_retries=config.feedback.max_retries,
        model=config.llm.anthropic.model if config.llm.anthropic else None,
    )
    return config


def validate_config(config: RepairConfig) -> None:
    """Checks spanning several fields.

    Raises:
        ValueError: If the provider section is missing or retry limits conflict
    """
    if config.llm.provider == "anthropic" and config.llm.anthropic is None:
        raise ValueError("Anthropic provider selected but anthropic config missing")

    feedback = config.feedback
    strategies = feedback.retry_strategies

    # Targeted fixes must leave at least one attempt for escalation
    if strategies.incremental_threshold >= feedback.max_retries:
        raise ValueError("incremental_threshold must be lower than max_retries")

    if feedback.token_limits.expanded_context_lines < strategies.context_window_lines:
        raise ValueError("expanded_context_lines must be >= context_window_lines")
