from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from signup.config import settings
from signup.middleware.exceptions import register_exception_handlers
from signup.routers import health, signup
from signup.services.reaper import lifespan as reaper_lifespan
from signup.utils.cache import close_redis


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with reaper_lifespan(app):
        yield
    await close_redis()


app = FastAPI(
    title="Patient Signup",
    description="Resumable multi-step patient onboarding",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(signup.router, prefix="/api/signup", tags=["signup"])
