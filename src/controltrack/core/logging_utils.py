# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Central logging utilities for the workflow engine.

Key Features
------------
1. configure_logging(): idempotent initialization of the root logger.
2. log_rejection(): uniform WARNING line for rejected workflow commands.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final

from beartype import beartype

if TYPE_CHECKING:
    from .errors import WorkflowError

__all__: Final = [
    "configure_logging",
    "log_rejection",
]

_DEFAULT_LOG_FORMAT: Final = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_is_configured: bool = False


@beartype
def configure_logging(
    *, level: int | str = logging.INFO, fmt: str = _DEFAULT_LOG_FORMAT
) -> None:
    """Configure the root logger exactly once.

    Calling this function multiple times is safe. Configuration is only
    applied on the first invocation.
    """
    global _is_configured
    if _is_configured:
        return

    logging.basicConfig(level=level, format=fmt)
    _is_configured = True


def log_rejection(logger: logging.Logger, command: str, error: WorkflowError) -> None:
    """Log a rejected command with the context needed to explain it."""
    logger.warning(
        "%s rejected: %s (%s %s, state=%s, attempted=%s)",
        command,
        error.kind.value,
        error.aggregate_type,
        error.aggregate_id,
        error.current_state,
        error.attempted,
    )
