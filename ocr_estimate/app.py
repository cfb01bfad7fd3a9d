import os
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ocr_estimate.application import get_review_service
from ocr_estimate.infrastructure import HttpReviewGateway, InMemoryReviewGateway, configure_review_gateway
from ocr_estimate.routes import pricing, review


def create_app() -> FastAPI:
    app = FastAPI(title="OCR Estimate API", version="0.1.0")

    api_base = os.getenv("ESTIMATE_API_BASE")
    sample_data = os.getenv("ESTIMATE_SAMPLE_DATA")
    if api_base:
        gateway = HttpReviewGateway(api_base, token=os.getenv("ESTIMATE_API_TOKEN"))
        configure_review_gateway(gateway)
    elif sample_data:
        configure_review_gateway(InMemoryReviewGateway.from_json(Path(sample_data)))

    poll_interval = os.getenv("ESTIMATE_POLL_INTERVAL")
    if poll_interval:
        get_review_service().poll_interval = float(poll_interval)

    origins_env = os.getenv("API_CORS_ORIGINS", "")
    origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()]
    if not origins:
        origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(review.router, prefix="/api")
    app.include_router(pricing.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "OCR Estimate API",
                "docs": "/docs",
            }
        )

    return app


app = create_app()
