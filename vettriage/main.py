"""Main FastAPI application."""
from fastapi import FastAPI
from contextlib import asynccontextmanager

from vettriage.core.logging import setup_logging
from vettriage.db.database import init_db
from vettriage.api import client_config, convo_ai, health, sessions, tokens, triage


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    setup_logging()
    await init_db()
    yield


app = FastAPI(
    title="VetTriage Proxy",
    description="Credential-holding proxy for the veterinary voice triage client",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["health"])
app.include_router(client_config.router, tags=["config"])
app.include_router(tokens.router, tags=["tokens"])
app.include_router(convo_ai.router, tags=["convo-ai"])
app.include_router(triage.router, tags=["triage"])
app.include_router(sessions.router, tags=["sessions"])


@app.get("/")
async def root():
    return {"message": "VetTriage Proxy", "version": "0.1.0"}


if __name__ == "__main__":
    import uvicorn

    from vettriage.core.config import settings

    uvicorn.run("vettriage.main:app", host=settings.host, port=settings.port)
