"""FastAPI application entry point."""

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.openapi.utils import get_openapi

from app.core.config import settings
from app.core.logging import setup_logging
from app.core.tracing import setup_tracing
from app.core.metrics import get_content_type, get_metrics, set_app_info
from app.core.middleware import (
    MetricsMiddleware,
    CorrelationIdMiddleware,
    TracingMiddleware,
    RequestLoggingMiddleware,
)
from app.modules.certificate.router import router as certificate_router
from app.modules.job.router import router as job_router
from app.modules.video.router import router as video_router

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="""
## Learning Platform Media & Certificates API

Backend services for course videos and completion certificates.

### Features

* **Videos** - Upload, background transcoding to 360p/480p/720p/1080p, thumbnails
* **Streaming** - Byte-range streaming with quality selection
* **Progress** - Server-Sent Events feed of processing progress
* **Certificates** - Queued issuance, lookup and public verification
* **Jobs** - Background job status

### Authentication

Upload, progress, delete and certificate request endpoints require a JWT Bearer token.

```
Authorization: Bearer <access_token>
```
    """,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    docs_url=None,
    redoc_url=None,
    openapi_tags=[
        {
            "name": "health",
            "description": "Health check endpoints",
        },
        {
            "name": "videos",
            "description": "Video upload, processing status, progress feed, streaming and thumbnails",
        },
        {
            "name": "certificates",
            "description": "Certificate requests, lookup and public verification",
        },
        {
            "name": "jobs",
            "description": "Background job status",
        },
    ],
)

setup_logging(
    level="INFO" if not settings.DEBUG else "DEBUG",
    json_format=True,
    include_stack_trace=True,
)

setup_tracing(
    service_name=settings.PROJECT_NAME,
    service_version=settings.VERSION,
    environment="development" if settings.DEBUG else "production",
    enable_console_export=settings.DEBUG,
)

set_app_info(
    version=settings.VERSION,
    environment="development" if settings.DEBUG else "production",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    # Players read these to drive range requests
    expose_headers=["Content-Range", "Accept-Ranges", "Content-Length", "X-Video-Quality"],
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(TracingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(MetricsMiddleware)


def custom_openapi() -> dict:
    """Generate custom OpenAPI schema."""
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
        tags=app.openapi_tags,
    )

    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "BearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
            "description": "JWT access token",
        },
    }

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi


@app.get("/docs", include_in_schema=False)
async def custom_swagger_ui_html():
    """Swagger UI documentation."""
    return get_swagger_ui_html(
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        title=f"{settings.PROJECT_NAME} - Swagger UI",
        swagger_js_url="https://cdn.jsdelivr.net/npm/swagger-ui-dist@5/swagger-ui-bundle.js",
        swagger_css_url="https://cdn.jsdelivr.net/npm/swagger-ui-dist@5/swagger-ui.css",
    )


@app.get("/redoc", include_in_schema=False)
async def redoc_html():
    """ReDoc documentation."""
    return get_redoc_html(
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        title=f"{settings.PROJECT_NAME} - ReDoc",
        redoc_js_url="https://cdn.jsdelivr.net/npm/redoc@latest/bundles/redoc.standalone.js",
    )


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns:
        dict: Health status with "healthy" or "unhealthy" value.
    """
    return {"status": "healthy"}


@app.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Prometheus scrape endpoint."""
    return Response(content=get_metrics(), media_type=get_content_type())


app.include_router(video_router, prefix=settings.API_V1_PREFIX)
app.include_router(certificate_router, prefix=settings.API_V1_PREFIX)
app.include_router(job_router, prefix=settings.API_V1_PREFIX)
