from fastapi import FastAPI, Request, status, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from routers import tokens, transfers, banking, activities
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from database import get_db, init_db, SessionLocal
from sqlalchemy.orm import Session
from sqlalchemy import text
import logging

from services.audit import AuditTrail
from services.config.config import ACTIVITY_RETENTION_DAYS, RETENTION_JOB_PERIOD_SECONDS
from services.errors import ServiceError
from services.logger import configure_logging

configure_logging()
logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def retention_task():
    db = SessionLocal()
    try:
        AuditTrail(db).delete_older_than(days=ACTIVITY_RETENTION_DAYS)
    except Exception as e:
        db.rollback()
        logger.error(f"Activity retention failed: {str(e)}")
    finally:
        db.close()


app = FastAPI(title="Wallet Ledger API")


# Add exception handler for validation errors
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Return detailed validation errors"""
    errors = []
    for error in exc.errors():
        field = " -> ".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"]
        })
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": "Validation error",
            "errors": errors,
        }
    )


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Include Routers
app.include_router(tokens.router, prefix="/tokens", tags=["Tokens"])
app.include_router(transfers.router, prefix="/transfers", tags=["Transfers"])
app.include_router(banking.router, prefix="/banking", tags=["Banking"])
app.include_router(activities.router, prefix="/activities", tags=["Activities"])


@app.get("/")
def root():
    return {"message": "Wallet ledger is running"}


@app.get("/health")
def health_check():
    """Health check endpoint for load balancers"""
    return {"status": "healthy", "service": "wallet-ledger"}


@app.get("/ready")
def readiness_check(db: Session = Depends(get_db)):
    """
    Readiness check endpoint - verifies database connectivity.
    """
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ready", "database": "connected"}
    except Exception as e:
        return JSONResponse(
            status_code=503,
            content={"status": "not ready", "database": "disconnected", "error": str(e)}
        )


@app.on_event("startup")
def startup_event():
    init_db()
    if ACTIVITY_RETENTION_DAYS > 0:
        scheduler.add_job(
            retention_task,
            trigger=IntervalTrigger(seconds=RETENTION_JOB_PERIOD_SECONDS),
            id="activity_retention",
            replace_existing=True,
        )
        scheduler.start()


@app.on_event("shutdown")
def shutdown_event():
    if scheduler.running:
        scheduler.shutdown(wait=False)
