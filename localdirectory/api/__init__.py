"""
LocalDirectory FastAPI Application.

- main: FastAPI application entry point and configuration
- routes/: API endpoint definitions organized by domain
- models: Pydantic request/response models
- dependencies: FastAPI dependency injection providers

API Structure:
- /health - Health check and readiness probes
- /metrics - Prometheus metrics
- /api/v1/imports - Review and business imports
- /api/v1/sync - Counter repair and the review sync queue
- /api/v1/duplicates - Duplicate review detection and resolution
"""
