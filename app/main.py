"""FastAPI app exposing the field layout tools."""

from __future__ import annotations

import os
import sys
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


_load_env_file(ROOT / "app" / ".env")

import logging
import time

import anyio

from app.db import get_db_stats, reset_db_stats
from app.stores import InMemoryTxManager
from app.tools import LayoutTools
from fieldlayout.errors import LayoutError
from layout_store import LayoutStore


logger = logging.getLogger("fieldlayout")
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO")

APP_ENV = os.getenv("APP_ENV", os.getenv("ENV", "dev")).strip().lower() or "dev"
IS_DEV = APP_ENV == "dev"
REQ_SLOW_MS = float(os.getenv("FIELDLAYOUT_REQ_SLOW_MS", "250"))
LAYOUT_STORE = os.getenv("LAYOUT_STORE", "").strip().lower() or ("db" if os.getenv("USE_DB", "").strip() == "1" else "memory")

_STATUS_BY_CODE = {
    "LAYOUT_NOT_FOUND": 404,
    "TOOL_UNKNOWN": 404,
    "PERSIST_FAILED": 500,
    "LAYOUT_CORRUPT": 500,
    "CONTENT_STORE_ERROR": 502,
}


def _build_backend():
    if LAYOUT_STORE == "db":
        from app.stores_db import DbLayoutStore, DbTxManager

        db_store = DbLayoutStore()
        if os.getenv("FIELDLAYOUT_DB_ENSURE_SCHEMA", "").strip() == "1":
            db_store.ensure_schema()
        return db_store, DbTxManager()
    if LAYOUT_STORE == "http":
        from app.stores_http import HttpLayoutStore

        return HttpLayoutStore(), InMemoryTxManager()
    if LAYOUT_STORE != "memory":
        raise RuntimeError(f"Unknown LAYOUT_STORE: {LAYOUT_STORE}")
    memory_store = LayoutStore()
    return memory_store, InMemoryTxManager(memory_store)


store, tx_mgr = _build_backend()
tools = LayoutTools(store, tx_mgr)
logger.info("layout_store=%s app_env=%s", LAYOUT_STORE, APP_ENV)

app = FastAPI(title="Field Layout Tools")


def _error_response(code: str, message: str, path: str | None = None, detail: dict | None = None, status: int = 400) -> JSONResponse:
    body = {
        "ok": False,
        "errors": [{"code": code, "message": message, "path": path, "detail": detail}],
        "warnings": [],
    }
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _ok_response(payload: dict, warnings: list | None = None, status: int = 200) -> JSONResponse:
    body = {"ok": True, **payload, "errors": [], "warnings": warnings or []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _layout_error_response(exc: LayoutError) -> JSONResponse:
    status = _STATUS_BY_CODE.get(exc.code, 400)
    if status >= 500:
        logger.warning("layout_error code=%s message=%s detail=%s", exc.code, exc.message, exc.detail)
    return _error_response(exc.code, exc.message, exc.path, exc.detail, status=status)


@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    reset_db_stats()
    start = time.perf_counter()
    response = await call_next(request)
    total_ms = (time.perf_counter() - start) * 1000
    db_stats = get_db_stats()
    route = request.scope.get("route")
    route_name = getattr(route, "name", None) or "unknown"
    logger.info(
        "%s %s %s route=%s total_ms=%.1f db_ms=%.1f db_q=%s",
        request.method,
        request.url.path,
        response.status_code,
        route_name,
        total_ms,
        db_stats.get("total_ms", 0.0),
        db_stats.get("queries", 0),
    )
    if total_ms >= REQ_SLOW_MS:
        logger.warning(
            "slow_request method=%s path=%s route=%s total_ms=%.1f status=%s",
            request.method,
            request.url.path,
            route_name,
            total_ms,
            response.status_code,
        )
    if IS_DEV:
        response.headers["X-Req-MS"] = f"{total_ms:.1f}"
        response.headers["X-Route"] = route_name
    return response


@app.exception_handler(LayoutError)
async def layout_error_handler(request: Request, exc: LayoutError):
    return _layout_error_response(exc)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error path=%s", request.url.path)
    return _error_response("INTERNAL_ERROR", "Unexpected server error", detail={"error": str(exc)}, status=500)


async def _safe_json(request: Request) -> dict | None:
    try:
        return await request.json()
    except Exception:
        return None


async def _call_tool(name: str, arguments) -> JSONResponse:
    result = await anyio.to_thread.run_sync(tools.call, name, arguments)
    warnings = result.pop("warnings", None)
    return _ok_response(result, warnings=warnings)


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


@app.get("/tools")
async def list_tools():
    return _ok_response({"tools": tools.definitions()})


@app.post("/tools/call")
async def call_tool(request: Request):
    body = await _safe_json(request)
    if not isinstance(body, dict) or not isinstance(body.get("name"), str):
        return _error_response("SPEC_MALFORMED", "body must be an object with a tool name", "name")
    return await _call_tool(body["name"], body.get("arguments"))


@app.get("/layouts/{layout_id}")
async def get_layout(layout_id: int):
    return await _call_tool("get_field_layout", {"fieldLayoutId": layout_id})


@app.put("/layouts/{layout_id}")
async def update_layout(layout_id: int, request: Request):
    body = await _safe_json(request)
    if not isinstance(body, dict):
        return _error_response("SPEC_MALFORMED", "body must be an object", "$")
    groups = body.get("groups") if "groups" in body else body.get("tabs")
    return await _call_tool("update_field_layout", {"fieldLayoutId": layout_id, "groups": groups})


@app.get("/layouts/{layout_id}/fields")
async def get_layout_fields(layout_id: int):
    return await _call_tool("get_fields", {"fieldLayoutId": layout_id})


@app.get("/fields")
async def get_all_fields():
    return await _call_tool("get_fields", {})


@app.get("/layouts/{layout_id}/history")
async def get_layout_history(layout_id: int):
    list_history = getattr(store, "list_history", None)
    if list_history is None:
        return _error_response("HISTORY_UNAVAILABLE", "This layout store keeps no history", "layout_id", status=501)
    history = await anyio.to_thread.run_sync(list_history, layout_id)
    return _ok_response({"fieldLayoutId": layout_id, "history": history})
