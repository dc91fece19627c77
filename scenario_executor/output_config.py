"""Output and log format configuration shared by the CLI and the reporters."""

import os
from enum import Enum
from typing import Literal

LogFormat = Literal["json", "console", "plain"]


class OutputFormat(str, Enum):
    """Console output format options."""
    AUTO = "auto"
    RICH = "rich"
    PLAIN = "plain"
    JSON = "json"


ENV_VAR_NAME = "CONSOLE_OUTPUT_FORMAT"


def get_output_format(cli_override: str | None = None) -> OutputFormat:
    """
    Get the output format with priority: CLI parameter > Environment variable > Default (auto).

    Args:
        cli_override: Optional CLI parameter value that takes precedence

    Returns:
        OutputFormat enum value
    """
    if cli_override:
        try:
            return OutputFormat(cli_override.lower())
        except ValueError:
            pass

    env_value = os.environ.get(ENV_VAR_NAME)
    if env_value:
        try:
            return OutputFormat(env_value.lower())
        except ValueError:
            pass

    return OutputFormat.AUTO


def get_log_format(output_format: OutputFormat) -> LogFormat:
    """
    Map the console output format onto a structlog renderer.

    - auto/rich -> console (with colors)
    - plain -> plain (no colors)
    - json -> json
    """
    if output_format == OutputFormat.JSON:
        return "json"
    if output_format == OutputFormat.PLAIN:
        return "plain"
    return "console"
