from __future__ import annotations

from pathlib import Path

import pytest

from order_intake.config import Settings


@pytest.fixture(autouse=True)
def _default_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    # Settings read .env from the working directory; keep the developer's out.
    monkeypatch.chdir(tmp_path)
    for name in Settings.model_fields:
        monkeypatch.delenv(name.upper(), raising=False)
    monkeypatch.setenv("SCHEDULER_ENABLED", "false")

    from order_intake.config import get_settings
    from order_intake.pipeline.intake import get_intake_pipeline

    get_settings.cache_clear()
    get_intake_pipeline.cache_clear()
