"""FastAPI application entry point."""

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment variables before importing runtime config/services.
load_dotenv()

from .config import settings
from .logging_config import setup_logging

setup_logging(settings.log_level)

import logging

from .routers import knowledge_base, retrieval

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Knowledge Base Retrieval API",
    description="Knowledge base declarations and retrieval-augmented answering",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(knowledge_base.router)
app.include_router(retrieval.router)


@app.get("/")
async def root():
    return {"message": "Knowledge Base Retrieval API", "version": "0.1.0"}


@app.get("/api/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    logger.info("Starting API server on %s:%s", settings.api_host, settings.api_port)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
