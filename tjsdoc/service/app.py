"""FastAPI control surface for a resident (keep-alive) tjsdoc session."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..errors import FileParseError, LifecycleError
from ..package import tjsdoc_version

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from ..coordinator import LifecycleControl


class HealthResponse(BaseModel):
    status: str


class StatusResponse(BaseModel):
    state: str
    pass_number: int


class SignalResponse(BaseModel):
    status: str
    signal: str


class ParseRequest(BaseModel):
    path: str


class ParseResponse(BaseModel):
    path: str
    records: int
    kinds: Dict[str, int]


def create_app(control: "LifecycleControl") -> FastAPI:
    """Create the FastAPI application driving `control`."""

    app = FastAPI(title="tjsdoc service", version=tjsdoc_version())

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/status", response_model=StatusResponse)
    async def status() -> StatusResponse:
        return StatusResponse(state=control.state.value, pass_number=control.pass_number)

    @app.post("/regenerate", response_model=SignalResponse, status_code=202)
    async def regenerate() -> SignalResponse:
        control.request_regenerate()
        return SignalResponse(status="accepted", signal="regenerate")

    @app.post("/shutdown", response_model=SignalResponse, status_code=202)
    async def shutdown() -> SignalResponse:
        control.request_shutdown()
        return SignalResponse(status="accepted", signal="shutdown")

    @app.post("/parse", response_model=ParseResponse)
    async def parse(payload: ParseRequest) -> ParseResponse:
        result = control.parse_file(Path(payload.path))
        kinds: Dict[str, int] = {}
        for record in result.records if result is not None else []:
            kinds[record.kind] = kinds.get(record.kind, 0) + 1
        return ParseResponse(path=payload.path, records=sum(kinds.values()), kinds=kinds)

    @app.exception_handler(LifecycleError)
    async def lifecycle_error_handler(_: Any, exc: LifecycleError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(FileParseError)
    async def parse_error_handler(_: Any, exc: FileParseError) -> JSONResponse:
        status_code = 404 if isinstance(exc.__cause__, FileNotFoundError) else 422
        return JSONResponse(status_code=status_code, content={"detail": str(exc), "path": str(exc.path)})

    return app


__all__ = ["create_app"]
