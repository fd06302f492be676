from __future__ import annotations

import pytest

from problemhelper.config import ProcessConfig


@pytest.fixture
def fast_config() -> ProcessConfig:
    return ProcessConfig(terminate_grace_period=0.5, drain_timeout=2.0)
