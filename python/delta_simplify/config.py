import logging
import os
import sys
from typing import Any, Callable, List, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

from delta_simplify.models import Operation

LOG_LEVEL_ENV = "DELTA_SIMPLIFY_LOG_LEVEL"


class BuildOptions(BaseModel):
    """Knobs for QueryDelta.build()."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    prevent_reuse_conditions: bool = Field(
        True, description="Skip conditions that were already applied by an earlier build."
    )
    maintain_ignore_conditions: bool = Field(
        True, description="Keep Ignore conditions active across builds instead of consuming them."
    )
    unknown_object_type_builder: Optional[Callable[[Any], List[Operation]]] = Field(
        None, description="Converts condition results of a caller-defined type into runs."
    )


class DiffOptions(BaseModel):
    cleanup_semantic: bool = Field(True, description="Coalesce small, noisy diff fragments.")
    word_level: bool = Field(False, description="Diff whole words instead of single characters.")
    timeout: float = Field(1.0, ge=0, description="diff_match_patch Diff_Timeout in seconds; 0 disables it.")


def configure_logging(level: Optional[str] = None, json_output: bool = False) -> None:
    """
    Routes stdlib logging and structlog to stderr.
    Only entry points call this; library modules just get a logger.
    """
    level_name = (level or os.environ.get(LOG_LEVEL_ENV) or "WARNING").upper()
    numeric_level = getattr(logging, level_name, logging.WARNING)
    logging.basicConfig(stream=sys.stderr, level=numeric_level, force=True)

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )
