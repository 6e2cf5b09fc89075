"""Composable builder for the docindex HTTP server."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import asynccontextmanager
import json
import logging
from typing import TYPE_CHECKING, Any

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from docindex_server.config import Settings
from docindex_server.domain.schema import create_index_demo_schema
from docindex_server.engine.engine import DocumentEngine
from docindex_server.observability import (
    configure_logging,
    configure_metrics_exporter,
    configure_trace_exporter,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
    init_tracing,
)
from docindex_server.observability.tracing import TraceContextMiddleware, trace_request
from docindex_server.runtime.health import build_health_endpoint
from docindex_server.runtime.signals import install_shutdown_signals
from docindex_server.service_layer import services


if TYPE_CHECKING:
    from starlette.requests import Request


logger = logging.getLogger(__name__)

_CREATE_BODY_KEYS = {"message": "message", "totalCount": "totalDocuments", "data": "data"}
_LIST_BODY_KEYS = {"message": "message", "count": "count", "data": "data"}


class AppBuilder:
    """Builds the ASGI app around one ``DocumentEngine``.

    When no engine is supplied the builder creates one from ``Settings``;
    the lifespan then opens it, registers the served collection and closes
    it on shutdown. A supplied engine that is already open is left open.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        engine: DocumentEngine | None = None,
        *,
        configure_observability: bool = True,
    ) -> None:
        self.settings = settings or Settings()
        self.engine = engine or DocumentEngine(self.settings.engine_settings())
        self.configure_observability = configure_observability

    def build(self) -> Starlette:
        settings = self.settings
        if self.configure_observability:
            configure_logging(level=settings.log_level, json_output=settings.json_logs, access_log=settings.access_log)
            collector = settings.collector_config()
            init_metrics(service_name=settings.service_name)
            configure_metrics_exporter(collector, service_name=settings.service_name)
            provider = init_tracing(
                service_name=settings.service_name, resource_attributes=collector.resource_attributes
            )
            configure_trace_exporter(collector, provider)

        app = Starlette(
            debug=settings.log_level == "debug",
            routes=self._build_routes(),
            lifespan=self._build_lifespan_manager(),
            middleware=[
                Middleware(TraceContextMiddleware),
                Middleware(BaseHTTPMiddleware, dispatch=trace_request),
            ],
        )
        app.state.engine = self.engine
        app.state.settings = settings
        logger.info("docindex server initialized for collection %s", settings.collection_name)
        return app

    def _build_lifespan_manager(self):
        engine = self.engine
        collection_name = self.settings.collection_name

        @asynccontextmanager
        async def lifespan(app: Starlette):
            opened_here = not engine.is_open
            engine.open()
            if collection_name not in engine.collection_names():
                engine.create_collection(create_index_demo_schema(collection_name))
            install_shutdown_signals(app)
            logger.info("Serving collection %s", collection_name)
            try:
                yield
            finally:
                if opened_here:
                    engine.close()

        return lifespan

    def _build_routes(self) -> list[Route]:
        return [
            Route("/api/createIndex", endpoint=self._build_create_endpoint(), methods=["POST"]),
            Route("/api/getAll", endpoint=self._build_list_endpoint(), methods=["GET"]),
            Route("/api/search", endpoint=self._build_search_endpoint(), methods=["GET"]),
            Route("/api/explain", endpoint=self._build_explain_endpoint(), methods=["GET"]),
            Route("/api/documents/{doc_id}", endpoint=self._build_get_endpoint(), methods=["GET"]),
            Route("/health", endpoint=build_health_endpoint(self.engine), methods=["GET"]),
            Route("/metrics", endpoint=self._build_metrics_endpoint(), methods=["GET"]),
        ]

    # -- plumbing ---------------------------------------------------------

    async def _call(self, func: Callable[..., dict[str, Any]], *args: Any, **kwargs: Any) -> dict[str, Any]:
        """Run a service function in the threadpool; unexpected errors become a 500 result."""

        try:
            return await run_in_threadpool(func, *args, **kwargs)
        except Exception as exc:
            logger.exception("Unhandled error in %s", func.__name__)
            message = "Internal server error" if self.settings.mask_error_details else str(exc)
            return {"status": "error", "code": 500, "message": message}

    @staticmethod
    def _render(result: dict[str, Any], keys: dict[str, str]) -> JSONResponse:
        if result["status"] == "error":
            return JSONResponse({"error": result["message"]}, status_code=result["code"])
        body = {wire: result[name] for name, wire in keys.items() if name in result}
        return JSONResponse(body, status_code=result["code"])

    def _service_kwargs(self, *, geo: bool = False) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"collection_name": self.settings.collection_name}
        if geo:
            kwargs["default_distance"] = self.settings.default_geo_distance
        return kwargs

    # -- endpoints ----------------------------------------------------------

    def _build_create_endpoint(self):
        async def create_endpoint(request: Request) -> JSONResponse:
            shutdown = getattr(request.app.state, "shutdown_event", None)
            if shutdown is not None and shutdown.is_set():
                return JSONResponse({"error": "Server is shutting down"}, status_code=503)
            try:
                body = await request.json()
            except (json.JSONDecodeError, UnicodeDecodeError):
                return JSONResponse({"error": "Request body must be valid JSON"}, status_code=400)
            result = await self._call(services.create_document, self.engine, body, **self._service_kwargs())
            return self._render(result, _CREATE_BODY_KEYS)

        return create_endpoint

    def _build_list_endpoint(self):
        async def list_endpoint(request: Request) -> JSONResponse:
            params = dict(request.query_params)
            result = await self._call(services.list_documents, self.engine, params, **self._service_kwargs())
            return self._render(result, _LIST_BODY_KEYS)

        return list_endpoint

    def _build_search_endpoint(self):
        async def search_endpoint(request: Request) -> JSONResponse:
            params = dict(request.query_params)
            result = await self._call(
                services.search_documents, self.engine, params, **self._service_kwargs(geo=True)
            )
            return self._render(result, _LIST_BODY_KEYS)

        return search_endpoint

    def _build_explain_endpoint(self):
        async def explain_endpoint(request: Request) -> JSONResponse:
            params = dict(request.query_params)
            result = await self._call(services.explain_search, self.engine, params, **self._service_kwargs(geo=True))
            return self._render(result, {"plan": "queryPlanner"})

        return explain_endpoint

    def _build_get_endpoint(self):
        async def get_endpoint(request: Request) -> JSONResponse:
            doc_id = request.path_params["doc_id"]
            result = await self._call(services.get_document, self.engine, doc_id, **self._service_kwargs())
            return self._render(result, {"message": "message", "data": "data"})

        return get_endpoint

    def _build_metrics_endpoint(self):
        async def metrics_endpoint(_: Request) -> Response:
            return Response(content=get_metrics(), media_type=get_metrics_content_type())

        return metrics_endpoint
