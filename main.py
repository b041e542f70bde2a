import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.database import Database

from config import get_config
from database import ensure_indexes, get_client, get_db
from errors import register_error_handlers
from routers import auth, customers, dashboard, orders, products, store

config = get_config()
logging.basicConfig(
    level=config.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        ensure_indexes(get_client(config)[config.database_name])
    except Exception as e:
        logger.warning("Could not ensure indexes at startup: %s", e)
    yield


app = FastAPI(title="Store Admin API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(auth.router)
app.include_router(products.router)
app.include_router(orders.router)
app.include_router(customers.router)
app.include_router(store.router)
app.include_router(dashboard.router)


@app.get("/")
def read_root():
    return {"message": "Store Admin API"}


@app.get("/test")
def test_database(db: Database = Depends(get_db)):
    info = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": db.name,
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        info["collections"] = db.list_collection_names()[:10]
        info["database"] = "✅ Connected & Working"
        info["connection_status"] = "Connected"
    except Exception as e:
        info["database"] = f"⚠️ Error: {str(e)[:80]}"
    return info


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.port)
