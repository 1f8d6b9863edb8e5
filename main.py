import os
import logging

from contextlib import asynccontextmanager
from dotenv import load_dotenv

load_dotenv()  # before app modules read their env

from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from app.db import close_pool, ensure_schema, get_pool
from app.errors import InternalError, NotFoundError
from app.routers.auth_me import router as auth_me_router
from app.routers.discord import router as discord_router
from app.routers.habits import router as habits_router
from app.routers.limits import router as limits_router


# ----------------- BOOTSTRAP -----------------
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("app")

# --------- ENV ---------
required_env_vars = ["DATABASE_URL", "SECRET_KEY"]
missing_vars = [var for var in required_env_vars if not os.getenv(var)]
if missing_vars:
    raise ValueError(f"Missing required environment variables: {missing_vars}")

SECRET_KEY = os.getenv("SECRET_KEY")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")
PORT = int(os.getenv("PORT", 8000))

ENV = os.getenv("ENV", "production").lower()
IS_PROD = ENV in ("prod", "production")

# ---- Pools / lifespan ----
@asynccontextmanager
async def lifespan(app: FastAPI):
    pool = await get_pool()
    app.state.pool = pool

    # create-first so fresh DBs work
    await ensure_schema(pool)
    logger.info("✅ Database ready")

    try:
        yield
    finally:
        await close_pool()

# --- FastAPI app ---
app = FastAPI(lifespan=lifespan)

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})

@app.exception_handler(InternalError)
async def internal_error_handler(request: Request, exc: InternalError):
    logger.error("Internal error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})

app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL],
    allow_credentials=True,           # cookies!
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
)

app.add_middleware(
    SessionMiddleware,
    secret_key=SECRET_KEY,
    same_site="none" if IS_PROD else "lax",
    https_only=IS_PROD,
    session_cookie="session",
)

# ---- Router wiring ----
app.include_router(auth_me_router)          # /api/auth/me
app.include_router(habits_router)           # /api/habits, /api/rank
app.include_router(discord_router)          # /api/discord/*
app.include_router(limits_router)           # /api/limits

@app.get("/")
async def root():
    return {"message": "Coaching API", "status": "healthy"}

@app.get("/health")
async def health_check(request: Request):
    try:
        async with request.app.state.pool.acquire() as conn:
            await conn.fetchval("SELECT 1")
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        return {"status": "unhealthy", "database": "disconnected", "error": str(e)}

@app.post("/api/logout")
async def logout(request: Request):
    request.session.clear()
    return {"message": "Logged out successfully"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=PORT)
