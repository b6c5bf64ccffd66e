from dotenv import load_dotenv
load_dotenv()

import logfire

# Configure Logfire BEFORE importing anything else that uses pydantic-ai
# Only send to Logfire if LOGFIRE_TOKEN is set (production) or user is authenticated (local dev)
try:
    logfire.configure()
    logfire.instrument_pydantic_ai()
    logfire.instrument_httpx(capture_all=True)
    print("Logfire configured successfully")
except Exception as e:
    print(f"Logfire not configured (running without observability): {e}")
    # Configure with send_to_logfire=False so spans still work locally but don't require auth
    logfire.configure(send_to_logfire=False)
    logfire.instrument_pydantic_ai()
    logfire.instrument_httpx(capture_all=True)

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from errors import ApiError, api_error_handler
from redis_manager import get_image_store
from routers import (
    edit_image,
    edit_multi_image,
    enhance_prompt,
    generate_image,
    image_progress,
    images,
    search,
    video,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan event handler for startup and shutdown
    """
    # Startup
    print("Initializing image URL store...")
    store = await get_image_store()
    logfire.info("GeminiChat API started successfully")

    yield

    # Shutdown
    logfire.info("Shutting down GeminiChat API...")
    await store.close()

app = FastAPI(
    title="GeminiChat API",
    description="Image, video, search and prompt tooling in front of OpenAI, Replicate, WaveSpeed and Perplexity",
    version="1.0.0",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, replace with specific origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(ApiError, api_error_handler)

# Include Routers
app.include_router(generate_image.router, prefix="/api", tags=["images"])
app.include_router(edit_image.router, prefix="/api", tags=["images"])
app.include_router(edit_multi_image.router, prefix="/api", tags=["images"])
app.include_router(images.router, prefix="/api", tags=["images"])
app.include_router(image_progress.router, prefix="/api/image-progress", tags=["progress"])
app.include_router(video.router, prefix="/api", tags=["video"])
app.include_router(search.router, prefix="/api", tags=["search"])
app.include_router(enhance_prompt.router, prefix="/api", tags=["prompts"])

@app.get("/")
async def root():
    return {
        "message": "GeminiChat API",
        "status": "running"
    }

@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
    }
