# coinvault/main.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from coinvault.__about__ import __app_name__, __version__
from coinvault.config import Settings, settings as default_settings
from coinvault.deps import provider_or_404, touch_session
from coinvault.errors import AccessDenied, AuthMissing, QuotaExceeded, TransientNetworkFailure
from coinvault.metrics import metrics
from coinvault.obs import RequestObservability, configure_logging
from coinvault.routers_market import router as market_router
from coinvault.routers_security import router as security_router
from coinvault.services import ServiceContainer
from coinvault.storage import KeyValueStore


def create_app(
    settings: Optional[Settings] = None,
    *,
    storage: Optional[KeyValueStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services = ServiceContainer(settings, storage=storage, transport=transport)
        app.state.services = services
        await services.initialize()
        try:
            yield
        finally:
            await services.cleanup()

    app = FastAPI(
        title="CoinVault",
        version=__version__,
        description="Rate-limited, cached access to crypto market, explorer, NFT, news and DeFi APIs.",
        lifespan=lifespan,
    )
    app.add_middleware(RequestObservability)
    _install_error_handlers(app)

    # ---------------------- Health endpoint ----------------------
    @app.get("/health")
    def health(request: Request):
        """
        Operational heartbeat. Reports which provider keys are configured
        without leaking them.
        """
        services: ServiceContainer = request.app.state.services
        return {
            "app": __app_name__,
            "version": __version__,
            "keys_loaded": {name: bool(p.api_key) for name, p in services.providers.items()},
            "persistent_state": bool(settings.state_path),
            "status": "ok",
        }

    # ---------------------- Metrics endpoint (JSON snapshot) ----------------------
    @app.get("/_metrics")
    def get_metrics():
        return metrics.snapshot()

    @app.get("/usage")
    async def usage(provider: Optional[str] = None, services: ServiceContainer = Depends(touch_session)):
        if provider is not None:
            provider_or_404(services, provider)
        stats = services.get_usage_stats(provider)
        return {name: s.model_dump() for name, s in stats.items()}

    @app.post("/usage/{provider}/reset-warning")
    async def reset_warning(provider: str, services: ServiceContainer = Depends(touch_session)):
        provider_or_404(services, provider)
        services.reset_quota_warning(provider)
        return {"provider": provider, "warning_armed": True}

    @app.get("/notices")
    async def notices(services: ServiceContainer = Depends(touch_session)):
        return [n.model_dump() for n in services.notices.recent()]

    # ---------------------- API routers ----------------------
    app.include_router(market_router)
    app.include_router(security_router)
    return app


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(QuotaExceeded)
    async def _quota(request: Request, exc: QuotaExceeded):
        retry_after = max(1, int(round(exc.retry_after)))
        return JSONResponse(
            status_code=429,
            content={"detail": str(exc), "provider": exc.provider, "limit": exc.limit},
            headers={"Retry-After": str(retry_after)},
        )

    @app.exception_handler(AuthMissing)
    async def _auth_missing(request: Request, exc: AuthMissing):
        return JSONResponse(status_code=424, content={"detail": str(exc), "provider": exc.provider})

    @app.exception_handler(TransientNetworkFailure)
    async def _upstream(request: Request, exc: TransientNetworkFailure):
        return JSONResponse(
            status_code=502,
            content={"detail": str(exc), "provider": exc.provider, "upstream_status": exc.status_code},
        )

    @app.exception_handler(AccessDenied)
    async def _denied(request: Request, exc: AccessDenied):
        return JSONResponse(status_code=423, content={"detail": str(exc), "notice": exc.notice.model_dump()})


configure_logging(default_settings.log_level)
app = create_app()
