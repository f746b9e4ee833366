import logging
from contextlib import asynccontextmanager
from typing import Iterator, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

import database
from config import get_settings
from errors import (
    AllEndpointsExhausted,
    InstallationInactive,
    InstallationNotFound,
    MissingShopDomain,
    NoUsableCredential,
    SyncCancelled,
    SyncError,
    SyncTimeout,
)
from orchestrator import SyncOrchestrator
from reconciler import Reconciler
from remote_client import RemoteClient
from schemas import ResourceKind, SyncRunResult
from storage import InstallationRepository, MongoMirrorStore

logger = logging.getLogger(__name__)

settings = get_settings()

STATUS_CODES = {
    InstallationNotFound: 404,
    InstallationInactive: 403,
    MissingShopDomain: 400,
    NoUsableCredential: 400,
    AllEndpointsExhausted: 502,
    SyncTimeout: 504,
    SyncCancelled: 503,
}


def configure_logging(level: str = settings.log_level):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    if database.db is not None:
        try:
            InstallationRepository(database.db).ensure_indexes()
            MongoMirrorStore(database.db).ensure_indexes()
        except Exception:
            # keep serving so /health can report the broken connection
            logger.exception("Could not create indexes, database may be unreachable")
    else:
        logger.warning("DATABASE_URL/DATABASE_NAME not set, sync endpoints will answer 503")
    yield


app = FastAPI(title="Droplet Sync API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _db():
    if database.db is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return database.db


def get_installations() -> InstallationRepository:
    return InstallationRepository(_db())


def get_store() -> MongoMirrorStore:
    return MongoMirrorStore(_db())


def get_client() -> Iterator[RemoteClient]:
    """One client (and requests.Session) per request; sessions are not shared across threads."""
    client = RemoteClient(timeout=settings.request_timeout)
    try:
        yield client
    finally:
        client.close()


def get_orchestrator(
    installations: InstallationRepository = Depends(get_installations),
    store: MongoMirrorStore = Depends(get_store),
    client: RemoteClient = Depends(get_client),
) -> SyncOrchestrator:
    return SyncOrchestrator(installations, client, Reconciler(store, settings.batch_size), settings)


def _http_error(error: SyncError) -> HTTPException:
    return HTTPException(status_code=STATUS_CODES.get(type(error), 500), detail=str(error))


@app.get("/")
def read_root():
    return {"message": "Droplet Sync Backend Running"}


@app.get("/health")
def health():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if settings.database_url else "❌ Not Set",
        "database_name": settings.database_name or "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }

    if database.db is None:
        return response

    response["connection_status"] = "Connected"
    try:
        response["collections"] = database.db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
    except Exception as e:
        response["database"] = f"⚠️ Connected but Error: {str(e)[:60]}"
    return response


@app.get("/api/droplet/installation/{installation_id}")
def get_installation(installation_id: str, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    try:
        installation = orchestrator.load_installation(installation_id)
    except SyncError as e:
        logger.warning("Installation lookup for %s failed: %s", installation_id, e)
        raise _http_error(e)

    return {
        "data": {
            "company_name": installation.company_name,
            "installation_id": installation.fluid_id,
            "is_active": installation.active,
        }
    }


@app.post("/api/{kind}/{installation_id}/sync", response_model=SyncRunResult)
def sync_resource(kind: ResourceKind, installation_id: str, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    try:
        return orchestrator.run(installation_id, kind)
    except SyncError as e:
        logger.error("Sync of %s for installation %s failed: %s", kind.value, installation_id, e)
        raise _http_error(e)


@app.get("/api/{kind}/{installation_id}")
def list_mirrored(
    kind: ResourceKind,
    installation_id: str,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
    store: MongoMirrorStore = Depends(get_store),
):
    try:
        installation = orchestrator.load_installation(installation_id)
    except SyncError as e:
        raise _http_error(e)

    return {
        kind.value: store.list_records(installation.id, kind, limit=limit),
        "installation": {"id": installation.fluid_id, "company_name": installation.company_name},
    }


@app.get("/api/{kind}/{installation_id}/remote")
def preview_remote(
    kind: ResourceKind,
    installation_id: str,
    per_page: int = Query(10, ge=1, le=250),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    try:
        page = orchestrator.preview(installation_id, kind, per_page=per_page)
    except SyncError as e:
        raise _http_error(e)

    return {
        kind.value: page.records,
        "meta": {"page": page.page, "per_page": page.per_page, "total_pages": page.total_pages, "total_count": page.total_count},
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
