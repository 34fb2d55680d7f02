import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pymongo.database import Database
from pymongo.errors import PyMongoError

import config
from apidocs import build_openapi
from auth import JWTAuthMiddleware, default_allow_list
from database import ensure_indexes, get_db
from errors import register_error_handlers
from routers import categories, orders, products, users
from schemas import MODELS

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

ALLOW_LIST = default_allow_list(config.API_URL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    database = app.dependency_overrides.get(get_db, get_db)()
    try:
        ensure_indexes(database)
    except PyMongoError as exc:
        logger.warning("Could not create indexes: %s", exc)
    app.openapi()
    logger.info("E-Shop API ready under %s", config.API_URL)
    yield
    logger.info("E-Shop API shutting down")


app = FastAPI(
    title="E-Shop API",
    version="1.0.0",
    docs_url="/api-docs",
    openapi_url="/api-docs/openapi.json",
    redoc_url=None,
    lifespan=lifespan,
)

# Added innermost first: CORS wraps logging, which wraps the auth gate.
app.add_middleware(JWTAuthMiddleware, allow_list=ALLOW_LIST)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    elapsed = (time.perf_counter() - start) * 1000
    logger.info("%s %s %s - %.1f ms", request.method, request.url.path, response.status_code, elapsed)
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

ROUTERS = [
    ("Products", f"{config.API_URL}/products", products.router),
    ("Categories", f"{config.API_URL}/categories", categories.router),
    ("Orders", f"{config.API_URL}/orders", orders.router),
    ("Users", f"{config.API_URL}/users", users.router),
]
for tag, prefix, router in ROUTERS:
    app.include_router(router, prefix=prefix, tags=[tag])

app.mount(config.UPLOAD_URL, StaticFiles(directory=config.UPLOAD_DIR, check_dir=False), name="uploads")


def custom_openapi():
    if app.openapi_schema is None:
        app.openapi_schema = build_openapi(ROUTERS, MODELS, config.API_URL, ALLOW_LIST)
    return app.openapi_schema


app.openapi = custom_openapi


# ----------------------- Health -----------------------
@app.get("/")
def root():
    return {"message": "E-Shop API running"}


@app.get("/test")
def test_database(db: Database = Depends(get_db)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": db.name,
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
