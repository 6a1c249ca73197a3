# config.py
# Runtime settings. Values come from the environment, optionally seeded from a
# .env file in the working directory.

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class Settings(BaseModel):
    """Process-wide defaults. Every value can be overridden per call."""

    tool_timeout_ms: int = Field(default=30_000, gt=0, description="Default per-tool timeout.")
    plan_timeout_ms: int = Field(default=60_000, gt=0, description="Default global plan budget.")
    workspace_dir: str = Field(default="./workspace", description="Root for file_write.")
    http_timeout_s: float = Field(default=10.0, gt=0)
    quiet: bool = Field(default=False, description="Silence all terminal output.")


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes", "on"}


def load_settings() -> Settings:
    values: dict = {}
    if os.getenv("PLAN_GUARD_TOOL_TIMEOUT_MS"):
        values["tool_timeout_ms"] = int(os.environ["PLAN_GUARD_TOOL_TIMEOUT_MS"])
    if os.getenv("PLAN_GUARD_PLAN_TIMEOUT_MS"):
        values["plan_timeout_ms"] = int(os.environ["PLAN_GUARD_PLAN_TIMEOUT_MS"])
    if os.getenv("PLAN_GUARD_WORKSPACE"):
        values["workspace_dir"] = os.environ["PLAN_GUARD_WORKSPACE"]
    if os.getenv("PLAN_GUARD_HTTP_TIMEOUT_S"):
        values["http_timeout_s"] = float(os.environ["PLAN_GUARD_HTTP_TIMEOUT_S"])
    values["quiet"] = _env_flag("PLAN_GUARD_QUIET")
    return Settings(**values)


settings = load_settings()
