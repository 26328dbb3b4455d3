from fastapi import FastAPI
import structlog
from storefront.version import VERSION
from storefront.api import checkout, sessions
from storefront.core.logging import configure_logging
from prometheus_fastapi_instrumentator import Instrumentator

logger = structlog.get_logger(__name__)

# Create instrumentator first
instrumentator = Instrumentator()

app = FastAPI(title="Storefront Service", version=VERSION)

# Instrument the app BEFORE adding routes or middleware
instrumentator.instrument(app).expose(
    app,
    include_in_schema=False,
    endpoint="/store/metrics",
    should_gzip=True,
)

@app.get("/health")
def health():
    return {"status": "ok"}

@app.get("/store/health")
def store_health():
    return {"status": "ok"}

@app.get("/v1/_info")
def info():
    return {"service": "storefront", "version": VERSION}

@app.on_event("startup")
async def startup_event():
    configure_logging()
    for route in app.routes:
        if hasattr(route, "methods") and hasattr(route, "path"):
            logger.debug("route registered", methods=sorted(route.methods), path=route.path)

app.include_router(checkout.router, prefix="/store", tags=["checkout"])
app.include_router(sessions.router, prefix="/auth", tags=["sessions"])
