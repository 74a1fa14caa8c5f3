from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import Optional
from urllib.parse import quote

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.responses import Response

from docsgate import __version__
from docsgate.config.settings import Settings
from docsgate.errors import DispatchError, UnknownServiceError
from docsgate.gateway.dispatch import (
    BackendDispatcher,
    BackendRegistry,
    DispatchRequest,
    forward_headers,
    response_headers,
)
from docsgate.gateway.middleware import DocsGateMiddleware
from docsgate.metrics.registry import METRICS
from docsgate.observability.logging import setup_logging
from docsgate.routing.state import RouteTableState, poll_forever

log = logging.getLogger(__name__)

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _install_sighup(state: RouteTableState) -> bool:
    if not hasattr(signal, "SIGHUP"):
        return False
    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGHUP, state.reload)
    except (NotImplementedError, RuntimeError, ValueError):
        # not the main thread (e.g. test client); reload stays available via state.reload()
        return False
    return True


def create_app(
    settings: Optional[Settings] = None,
    state: Optional[RouteTableState] = None,
    dispatcher: Optional[BackendDispatcher] = None,
) -> FastAPI:
    """Build the gateway. Raises ConfigError when the route table is invalid."""
    settings = settings or Settings()
    if state is None:
        state = RouteTableState(
            path=settings.ROUTES_PATH,
            inline=settings.ROUTES,
            reload_sec=settings.RELOAD_SEC,
            require_routes=settings.is_prod(),
        )
    if dispatcher is None:
        registry = BackendRegistry.from_sources(
            state.document.backends,
            settings.BACKENDS,
            state.document.default_backend or settings.DEFAULT_BACKEND,
        )
        dispatcher = BackendDispatcher(registry, timeout=settings.DISPATCH_TIMEOUT)

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        poller = asyncio.create_task(poll_forever(state))
        _install_sighup(state)
        try:
            yield
        finally:
            poller.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await poller
            await dispatcher.aclose()

    app = FastAPI(
        title="docsgate",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.route_state = state
    app.state.dispatcher = dispatcher
    app.add_middleware(
        DocsGateMiddleware,
        state=state,
        trusted_proxies=settings.trusted_proxy_networks(),
    )

    @app.exception_handler(UnknownServiceError)
    async def _unknown_service(request: Request, exc: UnknownServiceError):
        log.info("unknown_service", extra={"service": exc.service_name, "path": request.scope.get("path")})
        return JSONResponse({"detail": "Not Found"}, status_code=404)

    @app.exception_handler(DispatchError)
    async def _dispatch_failed(request: Request, exc: DispatchError):
        return JSONResponse({"detail": "upstream unavailable"}, status_code=502)

    async def healthz():
        table = state.table
        return {"ok": True, "routes": len(table), "etag": table.etag}

    async def metrics():
        return PlainTextResponse(METRICS.export_prom_text())

    app.add_api_route(settings.HEALTH_PATH, healthz, methods=["GET"])
    app.add_api_route(settings.METRICS_PATH, metrics, methods=["GET"])

    async def proxy(request: Request):
        service = getattr(request.state, "target_service", None)
        if service is None:
            service = dispatcher.registry.service_for_path(request.scope["path"])
        if service is None:
            raise UnknownServiceError(None)
        raw = request.scope.get("raw_path")
        path = raw.decode("latin-1") if raw else quote(request.scope["path"])
        req = DispatchRequest(
            service_name=service,
            path=path,
            query=request.scope.get("query_string", b"").decode("latin-1"),
            method=request.method,
            headers=tuple(
                forward_headers(request.headers.items(), request.headers.get("host"), request.url.scheme).items()
            ),
            body=await request.body(),
        )
        upstream = await dispatcher.forward(req)
        return Response(
            content=upstream.content,
            status_code=upstream.status_code,
            headers=response_headers(upstream.headers.items()),
        )

    app.add_api_route("/{path:path}", proxy, methods=PROXY_METHODS, include_in_schema=False)
    return app


def main() -> None:
    import uvicorn

    settings = Settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.PORT, log_config=None)


if __name__ == "__main__":
    main()
