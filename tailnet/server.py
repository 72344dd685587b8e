"""Tailnet Discovery — HTTP API.

Exposes:
  GET    /api/services                    — registry snapshot (alias: /api/config)
  GET    /api/services/{address}/{port}   — single service record
  POST   /api/services                    — create or replace a service
  DELETE /api/services/{address}/{port}   — delete a service
  GET    /api/hosts                       — list hosts
  POST   /api/hosts                       — create or rename a host
  DELETE /api/hosts/{address}             — delete a host and its services
  GET    /api/reachability                — probe every registered endpoint
  GET    /api/status                      — same, as status strings (?probe=false: all pending)
  GET    /check/{address}/{port}          — probe one endpoint, registered or not
  GET    /health                          — liveness check

Start with::

    python -m tailnet serve
    # or
    uvicorn tailnet.server:create_app --factory --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field

from tailnet import __version__
from tailnet.config import Settings
from tailnet.importer import import_config
from tailnet.registry import ReachabilityProber, RegistryService, RegistryStore, StoreError
from tailnet.registry.models import MAX_PORT

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────
# Request models
# ──────────────────────────────────────────────────────────────────

class ServiceRequest(BaseModel):
    address: str = Field(min_length=1, validation_alias=AliasChoices("address", "ip"))
    port: int = Field(gt=0, le=MAX_PORT)
    name: str
    host_name: str


class HostRequest(BaseModel):
    name: str
    address: str = Field(min_length=1, validation_alias=AliasChoices("address", "ip"))


def _failure(status_code: int, error: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": error}, status_code=status_code)


def get_registry(request: Request) -> RegistryService:
    return request.app.state.registry


def _parse_port(raw: str) -> int | None:
    """Port from a path segment, or ``None`` if it cannot name a real port."""
    try:
        port = int(raw)
    except ValueError:
        return None
    return port if 0 < port <= MAX_PORT else None


# ──────────────────────────────────────────────────────────────────
# Endpoints
# ──────────────────────────────────────────────────────────────────

router = APIRouter()


@router.get("/health")
async def health():
    return {"status": "ok", "version": __version__}


@router.get("/api/services")
@router.get("/api/config")
async def get_services(registry: RegistryService = Depends(get_registry)):
    return registry.get_snapshot().to_dict()


@router.get("/api/services/{address}/{port}")
async def get_service(address: str, port: str, registry: RegistryService = Depends(get_registry)):
    port_number = _parse_port(port)
    service = None if port_number is None else registry.check_service_conflict(address, port_number)
    if service is None:
        return _failure(404, "Service not found")
    return service.to_dict()


@router.post("/api/services")
async def create_service(req: ServiceRequest, registry: RegistryService = Depends(get_registry)):
    registry.create_or_update_service(req.address, req.port, req.name, req.host_name)
    return {"success": True, "message": "Service added successfully"}


@router.delete("/api/services/{address}/{port}")
async def delete_service(address: str, port: str, registry: RegistryService = Depends(get_registry)):
    port_number = _parse_port(port)
    if port_number is None or not registry.delete_service(address, port_number):
        return _failure(404, "Service not found")
    return {"success": True, "message": "Service deleted successfully"}


@router.get("/api/hosts")
async def list_hosts(registry: RegistryService = Depends(get_registry)):
    return [host.to_dict() for host in registry.list_hosts()]


@router.post("/api/hosts")
async def create_host(req: HostRequest, registry: RegistryService = Depends(get_registry)):
    registry.create_or_update_host(req.name, req.address)
    return {"success": True, "message": "Host added successfully"}


@router.delete("/api/hosts/{address}")
async def delete_host(address: str, registry: RegistryService = Depends(get_registry)):
    if not registry.delete_host(address):
        return _failure(404, "Host not found")
    return {"success": True, "message": "Host deleted successfully"}


@router.get("/api/reachability")
async def reachability(registry: RegistryService = Depends(get_registry)):
    return await registry.get_reachability()


@router.get("/api/status")
async def status_board(probe: bool = True, registry: RegistryService = Depends(get_registry)):
    board = await registry.get_status_board(probe=probe)
    return {key: status.value for key, status in board.items()}


@router.get("/check/{address}/{port}")
async def check_endpoint(address: str, port: str, registry: RegistryService = Depends(get_registry)):
    # Never fails: an unparsable port is simply unreachable
    port_number = _parse_port(port)
    if port_number is None:
        return {"reachable": False}
    return {"reachable": await registry.check_single_endpoint(address, port_number)}


# ──────────────────────────────────────────────────────────────────
# App factory
# ──────────────────────────────────────────────────────────────────

async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', 'invalid')}"
        for err in exc.errors()
    )
    return _failure(400, f"Invalid request — {problems}")


async def _store_error(request: Request, exc: StoreError) -> JSONResponse:
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return _failure(500, "Registry storage unavailable")


def create_app(
    settings: Settings | None = None,
    registry: RegistryService | None = None,
) -> FastAPI:
    """Build the FastAPI app.

    When *registry* is given it is used as-is and its lifetime stays with the
    caller. Otherwise a store is opened from *settings* at startup and closed
    at shutdown.
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if registry is not None:
            app.state.registry = registry
            yield
            return

        store = RegistryStore.open(settings.db_path)
        if settings.import_path is not None:
            import_config(store, settings.import_path)
        app.state.registry = RegistryService(store, ReachabilityProber(settings.probe_timeout))
        logger.info("Registry opened at %s", settings.db_path)
        try:
            yield
        finally:
            store.close()

    app = FastAPI(title="Tailnet Discovery", version=__version__, lifespan=lifespan)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(StoreError, _store_error)
    app.include_router(router)
    return app


def main(settings: Settings | None = None) -> None:
    import uvicorn

    settings = settings or Settings.from_env()
    logger.info("Starting Tailnet Discovery on http://%s:%d", settings.host, settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, reload=False)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
