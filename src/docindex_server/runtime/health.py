"""Health endpoint factory."""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.concurrency import run_in_threadpool
from starlette.responses import JSONResponse

from docindex_server.engine.errors import EngineError


if TYPE_CHECKING:
    from starlette.requests import Request

    from docindex_server.engine.engine import DocumentEngine


def collect_health(engine: DocumentEngine, *, verify: bool = False, draining: bool = False) -> dict:
    """Summarize engine state; ``verify`` also audits every index against the stored documents."""

    if not engine.is_open:
        return {"status": "unhealthy", "engine": "closed", "collections": {}}

    collections: dict[str, dict] = {}
    healthy = True
    for name in engine.collection_names():
        collection = engine.collection(name)
        entry: dict = {
            "documents": collection.count(),
            "indexes": collection.index_stats(),
        }
        if verify:
            try:
                problems = collection.verify()
            except EngineError as exc:
                problems = [exc.message]
            entry["consistent"] = not problems
            if problems:
                entry["problems"] = problems
                healthy = False
        collections[name] = entry

    if not healthy:
        status = "degraded"
    elif draining:
        status = "draining"
    else:
        status = "healthy"
    return {"status": status, "engine": "open", "collections": collections}


def build_health_endpoint(engine: DocumentEngine):
    """Return a coroutine function reporting engine health.

    ``?verify=true`` rebuilds every index from the documents and compares.
    The response is 200 unless the engine is closed.
    """

    async def health_check(request: Request) -> JSONResponse:
        verify = request.query_params.get("verify", "false").lower() == "true"
        shutdown = getattr(request.app.state, "shutdown_event", None)
        draining = bool(shutdown is not None and shutdown.is_set())
        payload = await run_in_threadpool(collect_health, engine, verify=verify, draining=draining)
        status_code = 503 if payload["status"] == "unhealthy" else 200
        return JSONResponse(payload, status_code=status_code)

    return health_check
