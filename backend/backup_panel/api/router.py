"""API router aggregator.

All endpoint routers are included here and mounted at /api by main.py.
"""

from fastapi import APIRouter

from backup_panel.api.endpoints import auth, backups

router = APIRouter()

# =============================================================================
# Authentication (login, magic links, logout)
# =============================================================================

router.include_router(auth.router, tags=["auth"])

# =============================================================================
# Backup archives
# =============================================================================

router.include_router(backups.router, tags=["backups"])
