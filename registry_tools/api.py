"""HTTP surface of the registry tools proxy.

All routes live under ``/api`` and speak JSON.  Failures are always returned
as ``{"ok": false, "error": <message>}``; the status code is derived from the
exception type raised by the service layer.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict

from fastapi import APIRouter, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from registry_tools import __version__, intake, provisioning
from registry_tools.context import AppContext
from registry_tools.errors import ConfigurationError, NotFoundError, RegistryToolsError
from registry_tools.registry import unique_categories

logger = logging.getLogger(__name__)

API_PREFIX = "/api"
API_KEY_HEADER = "x-api-key"

_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (ConfigurationError, 400),
)

router = APIRouter(prefix=API_PREFIX)


def error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"ok": False, "error": message}, status_code=status_code)


def status_for(exc: Exception) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def _json_body(request: Request) -> Dict[str, Any]:
    """Return the request body as a dict; anything else reads as empty."""

    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _context(request: Request) -> AppContext:
    return request.app.state.context


def _selector(body: Dict[str, Any]) -> Dict[str, Any]:
    category = str(body.get("category") or "").strip() or None
    key = str(body.get("key") or "").strip() or None
    return {"category": category, "key": key}


async def _call(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run blocking Sheets work off the event loop.

    Known service errors propagate to the exception handlers; anything else
    is logged and reported as a 500 envelope.
    """

    try:
        return await run_in_threadpool(func, *args, **kwargs)
    except RegistryToolsError:
        raise
    except Exception as exc:
        logger.exception("Unhandled error in %s", getattr(func, "__name__", func))
        return error_response(str(exc) or exc.__class__.__name__, 500)


# ----------------------------------------------------------------------
# Registry
# ----------------------------------------------------------------------
@router.get("/health")
async def health() -> Dict[str, Any]:
    return {"ok": True}


@router.get("/registry/categories")
async def registry_categories(request: Request):
    context = _context(request)

    def _run():
        return {"ok": True, "categories": unique_categories(context.read_registry())}

    return await _call(_run)


@router.get("/registry/list")
async def registry_list(request: Request):
    context = _context(request)

    def _run():
        return {"ok": True, "items": [row.to_json() for row in context.read_registry()]}

    return await _call(_run)


@router.post("/registry/parse-schema")
async def registry_parse_schema(request: Request):
    context = _context(request)
    selector = _selector(await _json_body(request))

    def _run():
        described = provisioning.describe_category(context.read_registry(), **selector)
        return {"ok": True, **described.to_json()}

    return await _call(_run)


@router.post("/registry/provision-category")
async def registry_provision_category(request: Request):
    context = _context(request)
    selector = _selector(await _json_body(request))

    def _run():
        result = provisioning.provision_category(context.client, context.read_registry(), **selector)
        return {"ok": True, **result.to_json()}

    return await _call(_run)


@router.post("/registry/validate-category")
async def registry_validate_category(request: Request):
    context = _context(request)
    selector = _selector(await _json_body(request))

    def _run():
        result = provisioning.validate_category(context.client, context.read_registry(), **selector)
        return {"ok": True, **result.to_json()}

    return await _call(_run)


@router.post("/registry/test-access")
async def registry_test_access(request: Request):
    context = _context(request)
    selector = _selector(await _json_body(request))

    def _run():
        header = provisioning.test_access(context.client, context.read_registry(), **selector)
        return {"ok": True, "canRead": True, "header": header}

    return await _call(_run)


@router.post("/registry/provision-all")
async def registry_provision_all(request: Request):
    context = _context(request)

    def _run():
        result = provisioning.provision_all(context.client, context.read_registry())
        return {"ok": True, **result.to_json()}

    return await _call(_run)


# ----------------------------------------------------------------------
# Models
# ----------------------------------------------------------------------
async def _add_model(request: Request, env: str):
    context = _context(request)
    payload = await _json_body(request)
    result = await _call(intake.add_model, context, env, payload)
    return result if isinstance(result, JSONResponse) else result.to_json()


async def _bulk_add_models(request: Request, env: str):
    context = _context(request)
    items = (await _json_body(request)).get("items")
    if not isinstance(items, list):
        items = []
    result = await _call(intake.bulk_add_models, context, env, items)
    return result if isinstance(result, JSONResponse) else result.to_json()


@router.post("/addModel")
async def add_model_dev(request: Request):
    return await _add_model(request, "dev")


@router.post("/addModelProd")
async def add_model_prod(request: Request):
    return await _add_model(request, "prod")


@router.post("/bulkAddModels")
async def bulk_add_models_dev(request: Request):
    return await _bulk_add_models(request, "dev")


@router.post("/bulkAddModelsProd")
async def bulk_add_models_prod(request: Request):
    return await _bulk_add_models(request, "prod")


# ----------------------------------------------------------------------
# Application factory
# ----------------------------------------------------------------------
def create_app(context: AppContext) -> FastAPI:
    """Build the FastAPI application bound to ``context``."""

    settings = context.settings
    app = FastAPI(title="Registry Tools Proxy", version=__version__)
    app.state.context = context

    @app.exception_handler(RegistryToolsError)
    async def registry_tools_error_handler(request: Request, exc: RegistryToolsError) -> JSONResponse:
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        else:
            logger.info("%s %s rejected (%s): %s", request.method, request.url.path, status_code, exc)
        return error_response(str(exc), status_code)

    @app.middleware("http")
    async def api_key_middleware(request: Request, call_next):
        if settings.api_key and request.url.path.startswith(API_PREFIX):
            if request.headers.get(API_KEY_HEADER) != settings.api_key:
                return error_response("Unauthorized (x-api-key mismatch)", 401)
        return await call_next(request)

    # Added last so it wraps the key check and answers preflight requests.
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    else:
        app.add_middleware(
            CORSMiddleware,
            allow_origin_regex=".*",
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(router)
    return app


__all__ = ["API_PREFIX", "create_app", "error_response", "router", "status_for"]
