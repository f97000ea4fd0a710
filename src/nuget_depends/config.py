"""Configuration settings for nuget-depends."""

from __future__ import annotations

from pathlib import Path  # noqa: TC003

from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    CliImplicitFlag,
    SettingsConfigDict,
)

from .registry import DEFAULT_SOURCE, DEFAULT_TIMEOUT


class Settings(BaseSettings):
    """Settings for nuget-depends."""

    targets: list[str] = Field(
        default_factory=list,
        description="""Root packages to resolve, each in the form
            NAME@VERSION:FRAMEWORK. For example:
            `Newtonsoft.Json@13.0.3:net8.0` or `Serilog@3.1.1:netstandard2.0`.""",
    )
    input_file: Path | None = Field(
        default=None,
        description="""JSON file with a list of root packages, each an object
            with `name`, `version` and `framework` keys. Resolved after
            `--targets`.""",
    )
    source: str = Field(
        default=DEFAULT_SOURCE,
        description="""URL of the NuGet V3 service index to query.""",
    )
    timeout: float = Field(
        default=DEFAULT_TIMEOUT,
        description="""Timeout in seconds for each registry request.""",
    )
    max_workers: int = Field(
        default=-1,
        description="""Maximum number of concurrent registry lookups. If not
            provided, the number of logical CPUs will be used.""",
    )
    log_level: str = Field(default="info", description="Log level")
    output_file: Path | None = Field(
        default=None,
        description="""Output file path. If not provided, the output will be
        written to stdout.""",
    )
    force: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Force the overwrite of the output file if it already
        exists.""",
    )
    version: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Show the version of nuget-depends and exit.""",
    )

    model_config = SettingsConfigDict(
        cli_parse_args=True,
        cli_prog_name="nuget-depends",
        cli_kebab_case=True,
        env_prefix="NUGET_DEPENDS_",
    )
