"""invoice_etl.api

HTTP face of the commit service: ``POST /api/import``.

The caller's identity comes from the upstream auth layer as the X-Owner-Id
header; every write is scoped to it.  The row store is a per-request
PostgreSQL connection from INVOICE_ETL_DB_DSN.

Run with:
    uvicorn invoice_etl.api:app
"""

from __future__ import annotations

import logging
import os
from typing import Iterator, Optional

import psycopg
from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from invoice_etl.commit_service import CommitError, CommitService, StorageError
from invoice_etl.storage import PostgresRowStore, RowStore, connect

log = logging.getLogger(__name__)

DSN_ENV = "INVOICE_ETL_DB_DSN"

router = APIRouter(tags=["Import"])


class UnauthorizedError(Exception):
    pass


def get_owner_id(
    x_owner_id: Optional[str] = Header(default=None, description="Authenticated owner id"),
) -> str:
    if not x_owner_id or not x_owner_id.strip():
        raise UnauthorizedError()
    return x_owner_id.strip()


def get_store() -> Iterator[RowStore]:
    dsn = os.environ.get(DSN_ENV)
    if not dsn:
        log.error("%s is not set", DSN_ENV)
        raise StorageError("Database is not configured", details=f"{DSN_ENV} is not set")
    try:
        conn = connect(dsn)
    except psycopg.Error as exc:
        log.error("database connection failed: %s", exc)
        raise StorageError(
            "Database connection failed", details=str(exc), code=exc.sqlstate
        ) from exc
    try:
        yield PostgresRowStore(conn)
    finally:
        conn.close()


@router.post("/api/import")
async def import_rows(
    request: Request,
    owner_id: str = Depends(get_owner_id),
    store: RowStore = Depends(get_store),
):
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse({"error": "Failed to parse request body"}, status_code=400)

    service = CommitService(store, owner_id)
    try:
        response = await run_in_threadpool(service.commit, body)
    except CommitError as exc:
        return JSONResponse(exc.to_body(), status_code=exc.status_code)
    return JSONResponse(response.to_body())


app = FastAPI(
    title="invoice-etl",
    description="Batch commit endpoint for CSV client and invoice imports",
    version="0.1.0",
)


@app.exception_handler(UnauthorizedError)
async def unauthorized_handler(request: Request, exc: UnauthorizedError):
    return JSONResponse({"error": "Unauthorized"}, status_code=401)


@app.exception_handler(CommitError)
async def commit_error_handler(request: Request, exc: CommitError):
    return JSONResponse(exc.to_body(), status_code=exc.status_code)


app.include_router(router)
