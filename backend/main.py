import logging

from fastapi import FastAPI
import uvicorn
from fastapi.middleware.cors import CORSMiddleware
from core.config import settings
from core.exceptions import setup_exception_handlers
from db.database import create_db_and_tables, engine
from db.migrations import add_missing_user_columns
from routers.zones import router as zones_router
from routers.cells import router as cells_router
from routers.categories import router as categories_router
from routers.products import router as products_router
from routers.inventory import router as inventory_router
from routers.operations import router as operations_router
from core.auth import fastapi_users, auth_backend
from contextlib import asynccontextmanager
from schemas.users import UserRead, UserCreate, UserUpdate

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_db_and_tables()
    await add_missing_user_columns(engine)
    logger.info("Warehouse ledger API started")
    yield


app = FastAPI(
    title="Warehouse Ledger API",
    description="Cell-level stock ledger with receive, withdraw and transfer protocols",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_exception_handlers(app)


@app.get("/", tags=["health"])
async def health():
    return {"message": "Warehouse Ledger API is running"}


# Authentication routes (fastapi-users)
app.include_router(fastapi_users.get_auth_router(auth_backend), prefix="/auth/jwt", tags=["auth"],)
app.include_router(fastapi_users.get_register_router(UserRead, UserCreate), prefix="/auth", tags=["auth"])
app.include_router(fastapi_users.get_reset_password_router(), prefix="/auth", tags=["auth"])
app.include_router(fastapi_users.get_verify_router(UserRead), prefix="/auth", tags=["auth"])
app.include_router(fastapi_users.get_users_router(UserRead, UserUpdate), prefix="/users", tags=["users"])

# Catalog routes
app.include_router(zones_router, prefix="/zones", tags=["zones"])
app.include_router(cells_router, prefix="/cells", tags=["cells"])
app.include_router(categories_router, prefix="/categories", tags=["categories"])
app.include_router(products_router, prefix="/products", tags=["products"])

# Ledger routes
app.include_router(inventory_router, tags=["inventory"])
app.include_router(operations_router, prefix="/operations", tags=["operations"])

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
