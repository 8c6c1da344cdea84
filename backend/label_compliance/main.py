"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import router
from .services import OCRService, is_llm_available
from .config import get_settings
from . import __version__

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if get_settings().debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles startup and shutdown."""
    logger.info("Starting Label Compliance API...")

    # Load the OCR model up front so the first extraction is not slowed down
    ocr_service = OCRService()
    if ocr_service.initialize():
        logger.info("OCR engine initialized and ready")
    else:
        logger.warning("OCR engine failed to initialize - will retry on first request")

    if not is_llm_available():
        logger.warning("OPENAI_API_KEY not set - cloud extraction disabled, local mode only")

    logger.info(f"API ready - Version {__version__}")

    yield

    logger.info("Shutting down Label Compliance API...")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="""
## Alcohol Label Field Classification API

Reads alcohol beverage label images, classifies the regulated label fields
and compares them with the values declared on the application.

### Features
- **Rule-based classification**: Verify declared values or extract fields from label text
- **Cloud classification**: Language-model extraction with strict response validation
- **Comparison**: Unit-aware, tolerance-based comparison of declared and label values
- **Bounding boxes**: Every found field is located on its source image

### Quick Start
1. Use `/health` to check API status
2. Use `/classify` to classify text you already have
3. Use `/extract` to run OCR and classification on label images
        """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Configure CORS - restrict to allowed frontend origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api/v1")

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": "Label Compliance API",
            "version": __version__,
            "docs": "/docs"
        }

    return app


# Create app instance
app = create_app()
