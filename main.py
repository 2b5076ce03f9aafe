import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import engine_settings
from src.core.logging_config import setup_logging
from src.routers import persona as persona_router

setup_logging(engine_settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Drive Derivation Engine - Persona API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Include Routers ---
app.include_router(persona_router.router, prefix="/api/v1", tags=["persona"])


@app.get("/health", tags=["Health Check"])
async def health():
    """
    Basic liveness check. Does not touch Redis.
    """
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    # Better to run with `uvicorn main:app --reload` from the project root directory
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
