# icupa/app/main.py
from __future__ import annotations
import logging
import sys
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from icupa.app.config import settings
from icupa.app.domain.errors import EnrichmentError
from icupa.app.routers.enrichment import error_response, router as enrichment_router
from icupa.services.errors import ServiceError

# plain stdout logging, fine for dev and containers
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

app = FastAPI(title="ICUPA Menu Enrichment API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(enrichment_router)


@app.exception_handler(ServiceError)
@app.exception_handler(EnrichmentError)
async def enrichment_error_handler(request: Request, exc: Exception):
    # raised while building dependencies, e.g. a missing provider key
    logging.getLogger("enrichment").error("request.fail path=%s error=%s", request.url.path, exc)
    return error_response(exc)


@app.get("/health")
def health():
    return {"ok": True}
