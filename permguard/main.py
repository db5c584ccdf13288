"""
PermGuard Daemon - Main Entry Point

Runs the permission HTTP API (default port 8775).

Endpoints:
- GET  /health                                  - Health check + stats
- POST /api/v1/permissions/check                - Check one transaction
- POST /api/v1/permissions/check/role           - Check using a named role
- POST /api/v1/permissions/check/batch          - All-or-nothing batch check
- POST /api/v1/permissions/roles/*, members/*   - Membership (owner only)
- POST /api/v1/permissions/contracts/*          - Target scopes (owner only)
- POST /api/v1/permissions/functions/*          - Function scopes (owner only)
- POST /api/v1/permissions/packs/load           - Apply a YAML policy pack
- GET  /api/v1/permissions/audit                - Audit trail

Startup order: restore state from the SQLite store, then apply the startup
policy pack, then attach the audit chain.
"""

import logging
from datetime import datetime
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api.admin import create_admin_routes
from .api.check import create_check_routes
from .config.settings import GuardSettings, get_settings
from .guard_system import PermissionGuard, set_guard
from .service.audit.merkle_chain import MerkleAuditLog
from .service.policy.policy_pack import apply_pack, load_pack
from .service.store.sqlite_store import PolicyStore

logger = logging.getLogger("permguard.daemon")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def build_guard(settings: GuardSettings, store: Optional[PolicyStore] = None) -> PermissionGuard:
    guard = PermissionGuard(settings.owner)

    if store is not None and store.load(guard):
        logger.info(f"Restored policy state from {store.db_path} (owner={guard.owner})")

    if settings.policy_pack_path:
        pack = load_pack(settings.policy_pack_path)
        apply_pack(guard, guard.owner, pack)

    return guard


def create_app(
    settings: Optional[GuardSettings] = None,
    guard: Optional[PermissionGuard] = None,
) -> FastAPI:
    settings = settings or get_settings()
    store = PolicyStore(settings.db_path) if settings.db_path else None
    if guard is None:
        guard = build_guard(settings, store)
    set_guard(guard)

    audit_log = None
    if settings.audit_log_path:
        audit_log = MerkleAuditLog(settings.audit_log_path)
        guard.events.subscribe(audit_log.record)

    on_change = None
    if store is not None and settings.persist:
        on_change = lambda: store.save(guard)  # noqa: E731

    app = FastAPI(
        title="PermGuard",
        description="Transaction permission engine for smart accounts",
        version=__version__,
    )

    # CORS for local UI
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(create_check_routes(guard))
    app.include_router(
        create_admin_routes(
            guard,
            auth_token=settings.auth_token,
            audit_log=audit_log,
            on_change=on_change,
        )
    )

    @app.get("/health")
    async def health_check():
        return {
            "status": "ok",
            "service": "permguard",
            "version": __version__,
            "owner": guard.owner,
            "stats": guard.get_stats(),
            "timestamp": datetime.utcnow().isoformat() + "Z",
        }

    @app.on_event("shutdown")
    async def shutdown():
        if store is not None:
            store.save(guard)
            store.close()
            logger.info(f"Saved policy state to {store.db_path}")

    app.state.guard = guard
    app.state.settings = settings
    app.state.audit_log = audit_log
    return app


def main(settings: Optional[GuardSettings] = None):
    """Run the PermGuard daemon."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    if not settings.has_owner:
        logger.warning("PERMGUARD_OWNER not set: configuration writes are disabled")

    app = create_app(settings)
    logger.info(f"Starting PermGuard v{__version__}")
    logger.info(f"   Listening on http://{settings.host}:{settings.port}")

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        access_log=False,
    )


if __name__ == "__main__":
    main()
