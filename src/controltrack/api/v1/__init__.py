# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""API v1 router aggregation.

This module combines all v1 API routers into a single router
that can be mounted on the main FastAPI application.
"""

from fastapi import APIRouter

from .assignments import router as assignments_router
from .audit import router as audit_router
from .controls import router as controls_router
from .cycles import router as cycles_router
from .evidence import router as evidence_router
from .findings import router as findings_router
from .testing import router as testing_router

# Create main v1 router
router = APIRouter(prefix="/api/v1")

router.include_router(controls_router, prefix="/controls", tags=["controls"])
router.include_router(cycles_router, prefix="/cycles", tags=["cycles"])
router.include_router(assignments_router, prefix="/assignments", tags=["assignments"])
router.include_router(
    testing_router, prefix="/assignments/{assignment_id}/execution", tags=["testing"]
)
router.include_router(evidence_router, prefix="/evidence-requests", tags=["evidence"])
router.include_router(findings_router, prefix="/findings", tags=["findings"])
router.include_router(audit_router, prefix="/audit", tags=["audit"])


__all__ = ["router"]
