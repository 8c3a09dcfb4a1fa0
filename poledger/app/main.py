from fastapi import FastAPI

from poledger.app.api.v1.router import router as v1_router
from poledger.app.config import settings
from poledger.app.logging_config import configure_logging

configure_logging(level=settings.log_level.upper(), json_lines=settings.log_json)

app = FastAPI(title="PO Ledger", version="0.1.0")
app.include_router(v1_router, prefix="/v1")
