"""Configuration — Pydantic models for problemhelper settings."""

from __future__ import annotations

import json
import os
from typing import Any

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field


class ProcessConfig(BaseModel):
    """How child processes are launched, read and stopped."""

    use_shell: bool = Field(
        default=False,
        description="Hand the command line to the OS shell instead of splitting it with shlex",
    )
    encoding: str = Field(default="utf-8", description="Encoding of child stdin/stdout/stderr")
    read_chunk_size: int = Field(default=4096, gt=0)
    terminate_grace_period: float = Field(
        default=2.0,
        ge=0,
        description="Seconds between SIGTERM and SIGKILL when terminating a session",
    )
    drain_timeout: float = Field(
        default=5.0,
        ge=0,
        description="Seconds to wait for output pumps to drain after the process exits",
    )
    launch_attempts: int = Field(
        default=3,
        ge=1,
        description="Spawn attempts when the OS reports transient resource exhaustion",
    )


class HarnessConfig(BaseModel):
    """Top-level problemhelper configuration."""

    process: ProcessConfig = Field(default_factory=ProcessConfig)
    compile_command: str | None = Field(
        default=None, description="Default command for `problemhelper compile`"
    )
    run_command: str | None = Field(
        default=None, description="Default command for `problemhelper run` and `tui`"
    )

    @classmethod
    def load(cls, config_path: str | None = None) -> HarnessConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            PROBLEMHELPER_USE_SHELL        - "1"/"true"/"yes" to run commands through the shell
            PROBLEMHELPER_ENCODING         - Child stream encoding
            PROBLEMHELPER_GRACE_PERIOD     - Seconds before SIGTERM escalates to SIGKILL
            PROBLEMHELPER_COMPILE_COMMAND  - Default compile command
            PROBLEMHELPER_RUN_COMMAND      - Default run command
        """
        load_dotenv(find_dotenv(usecwd=True), override=True)

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        process = config_data.get("process", {})

        env_shell = os.environ.get("PROBLEMHELPER_USE_SHELL")
        if env_shell:
            process["use_shell"] = env_shell.strip().lower() in ("1", "true", "yes", "on")

        env_encoding = os.environ.get("PROBLEMHELPER_ENCODING")
        if env_encoding:
            process["encoding"] = env_encoding

        env_grace = os.environ.get("PROBLEMHELPER_GRACE_PERIOD")
        if env_grace:
            process["terminate_grace_period"] = float(env_grace)

        if process:
            config_data["process"] = process

        env_compile = os.environ.get("PROBLEMHELPER_COMPILE_COMMAND")
        if env_compile:
            config_data["compile_command"] = env_compile

        env_run = os.environ.get("PROBLEMHELPER_RUN_COMMAND")
        if env_run:
            config_data["run_command"] = env_run

        return cls.model_validate(config_data)
