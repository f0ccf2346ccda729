from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from lakesync.core.config import PROJECT_NAME, ALLOW_ORIGINS, ENVIRONMENT, LOG_LEVEL, PORT
from lakesync.db.database import init_db
from lakesync.services.background import get_background_queue
from lakesync.routers import files_router, folders_router, vault_router, sync_router, groups_router, health_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Schema is ensured once, before any request is accepted
    init_db()
    background = get_background_queue()
    background.start()
    logger.info(f"{PROJECT_NAME} started ({ENVIRONMENT})")
    yield
    background.shutdown()


app = FastAPI(title=PROJECT_NAME, description="File storage, versioning and sync engine", lifespan=lifespan)

# Proxy Headers Middleware - Handle reverse proxy headers
@app.middleware("http")
async def proxy_headers_middleware(request: Request, call_next):
    if "x-forwarded-proto" in request.headers:
        request.scope["scheme"] = request.headers["x-forwarded-proto"]
    if "x-forwarded-for" in request.headers:
        original_ip = request.headers["x-forwarded-for"].split(",")[0].strip()
        request.scope["client"] = (original_ip, 0)
    return await call_next(request)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"  # Downloads are served with their stored mime
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Content-Security-Policy"] = "default-src 'none'"
    return response

# Include routers
app.include_router(files_router.router, prefix="/api/files", tags=["Files"])
app.include_router(folders_router.router, prefix="/api/folders", tags=["Folders"])
app.include_router(vault_router.router, prefix="/api/vault", tags=["Vault"])
app.include_router(sync_router.router, prefix="/api/sync", tags=["Sync"])
app.include_router(groups_router.router, prefix="/api", tags=["Groups"])
app.include_router(health_router.router, prefix="/api/health", tags=["Health"])

@app.get("/")
async def root():
    return {"message": f"{PROJECT_NAME} is running."}

if __name__ == "__main__":
    uvicorn_config = {
        "app": "lakesync.main:app",
        "host": "0.0.0.0",
        "port": PORT,
        "reload": ENVIRONMENT == "development",
        "forwarded_allow_ips": "*"
    }
    uvicorn.run(**uvicorn_config)
