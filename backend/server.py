from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import uuid
from contextlib import asynccontextmanager
from database import database
from routes import assistant
from services.entitlement_guard import ASSISTANT_USAGE_LIMIT_SCALE
from services.webhook_service import webhook_service

import os
import logging
from pathlib import Path
from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Freelancer Assistant API")
    await database.connect()

    logger.info(f"Assistant monthly limit (scale plan): {ASSISTANT_USAGE_LIMIT_SCALE}")
    if not webhook_service.is_configured():
        logger.info("AUTOMATION_WEBHOOK_URL/SECRET not set; assistant webhooks disabled")

    yield

    logger.info("Shutting down Freelancer Assistant API")
    await database.close()


app = FastAPI(
    title="Freelancer Assistant API",
    description="Natural-language commands for tasks, clients, orders and events",
    version="1.0.0",
    lifespan=lifespan
)

cors_origins = [o.strip() for o in os.environ.get('CORS_ORIGINS', '*').split(',') if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(assistant.router)


@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "environment": os.getenv("ENVIRONMENT", "development"),
        "database": "connected" if await database.ping() else "disconnected",
        "webhooks": "enabled" if webhook_service.is_configured() else "disabled",
    }


# Malformed request bodies: log locations under a request_id the client can quote
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = str(uuid.uuid4())
    errors = exc.errors()
    logger.warning(
        "Request validation failed request_id=%s path=%s errors=%s",
        request_id,
        request.url.path,
        [(e.get("loc"), e.get("msg"), e.get("type")) for e in errors],
    )
    return JSONResponse(
        status_code=422,
        content={
            "detail": [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in errors],
            "request_id": request_id,
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=8001,
        reload=os.getenv("ENVIRONMENT") == "development"
    )
