"""FastAPI dependencies: settings singleton and the shared pipeline steps."""

from __future__ import annotations

import threading
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request

from catalog_sync.config import Settings
from catalog_sync.sync.steps import PipelineSteps

_steps_lock = threading.Lock()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings loaded once per process from the environment."""

    return Settings.from_env()


def get_steps(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> PipelineSteps:
    """Open the database and catalog client on first use and reuse them afterwards."""

    state = request.app.state
    with _steps_lock:
        steps = getattr(state, "steps", None)
        if steps is None:
            steps = PipelineSteps.from_settings(
                settings,
                transport=getattr(state, "catalog_transport", None),
            )
            state.steps = steps
    return steps


SettingsDep = Annotated[Settings, Depends(get_settings)]
StepsDep = Annotated[PipelineSteps, Depends(get_steps)]
