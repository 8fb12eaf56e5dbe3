"""Configuration for the workflow engine.

Configuration is loaded from:
- environment variables (prefixed with `WORKFLOW_`)
- and a local `.env` file (if present)
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .bookmarks import MatchPolicy


class EngineSettings(BaseSettings):
    """Settings for the engine and its CLI host.

    Environment variables:
    - WORKFLOW_LOG_LEVEL           (optional)
    - WORKFLOW_STATE_PATH          (optional)
    - WORKFLOW_MATCH_POLICY        (optional)
    - WORKFLOW_KEEP_COMPLETED      (optional)
    - WORKFLOW_MAX_STEPS_PER_RUN   (optional)
    - WORKFLOW_MODULES             (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `EngineSettings(_env_file=path_to_env)`.
    """

    log_level: str = Field(
        default="INFO",
        description="Root logging level",
    )

    state_path: Path = Field(
        default=Path("workflow_state"),
        description="Directory where instance state is persisted, one JSON file per instance",
    )

    match_policy: MatchPolicy = Field(
        default=MatchPolicy.BROADCAST,
        description=(
            "How an event is delivered when several bookmarks or triggers match: "
            "'broadcast' delivers to all of them, 'first_match' to the oldest only."
        ),
    )

    keep_completed: bool = Field(
        default=True,
        description="Keep the state of completed, faulted and canceled instances",
    )

    max_steps_per_run: int = Field(
        default=0,
        ge=0,
        description="Fault an instance after this many steps in a single run (0 = unlimited)",
    )

    modules: str = Field(
        default="activity_workflows.samples",
        description="Comma-separated modules whose workflows the CLI registers.",
    )

    model_config = SettingsConfigDict(
        env_prefix="WORKFLOW_",
        env_file=".env",
        extra="ignore",
    )

    def parsed_modules(self) -> list[str]:
        return [m.strip() for m in self.modules.split(",") if m.strip()]
