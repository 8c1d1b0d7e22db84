"""FastAPI application entry point."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from swiftleave.config import settings
from swiftleave.database import Base, engine

# Import routers
from swiftleave.routers import approvals, directory, requests, tasks
from swiftleave.services.session import SessionContext

# Import all models so Base.metadata knows about them
from swiftleave.models.cache_entry import CacheEntry  # noqa: F401

app = FastAPI(
    title="SwiftLeave",
    description="Leave requests, approvals and task logging backed by a shared spreadsheet",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
# Added last so it wraps CORSMiddleware: the approval preflight is open to any origin
app.middleware("http")(approvals.answer_preflight)

# Process-wide role cache and directory snapshot
app.state.session_context = SessionContext()

# Register routers
app.include_router(directory.router, prefix="/api", tags=["Session & Directory"])
app.include_router(requests.router, prefix="/api/requests", tags=["Requests"])
app.include_router(tasks.router, prefix="/api/tasks", tags=["Tasks"])
app.include_router(approvals.router, prefix=approvals.APPROVAL_PATH, tags=["Approvals"])


@app.on_event("startup")
def on_startup():
    """Create the cache table on startup (for SQLite dev mode)."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
