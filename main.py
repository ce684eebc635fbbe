import asyncio
import logging
from typing import Any, Dict

import uvicorn
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from dotenv import load_dotenv
from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from sap_dashboard.api.v1.endpoints import router as v1_router
from sap_dashboard.core.data_loader import WorkbookLoadError, load_workbook, read_workbook
from sap_dashboard.core.dataset import Dataset
from sap_dashboard.core.derivation import ClassificationRules
from sap_dashboard.utils.config import load_config, setup_logging

load_dotenv()

# Initialize logging
setup_logging()
logger = logging.getLogger(__name__)

config = load_config()

# Initialize FastAPI app with metadata for Swagger UI
app = FastAPI(
    title="SAP Authorization Analytics API",
    description="API for loading an SAP authorization workbook and serving user, role and transaction code analytics.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config["CORS_ORIGINS"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# The loaded dataset lives on app.state and is replaced wholesale on reload
app.state.dataset = None
app.state.rules = ClassificationRules.from_config(config)

# Pydantic models for request/response validation
class DataLoadResponse(BaseModel):
    status: str
    message: str
    data: Dict[str, Any]

def source_label(cfg: dict) -> str:
    if cfg.get("AZURE_BLOB_SAS_URL") and cfg.get("WORKBOOK_BLOB_NAME"):
        return f"blob:{cfg.get('AZURE_BLOB_CONTAINER')}/{cfg.get('WORKBOOK_BLOB_NAME')}"
    return cfg.get("WORKBOOK_SOURCE") or ""

async def load_dataset_from_source() -> Dataset:
    """
    Fetch the configured workbook and derive a fresh dataset.
    The previous dataset stays in place if anything fails.
    """
    tables = await load_workbook(config)
    dataset = Dataset(tables, source=source_label(config), rules=app.state.rules)
    app.state.dataset = dataset
    return dataset

@app.post("/api/v1/load-data", response_model=DataLoadResponse)
async def load_data_endpoint():
    logger.info("[load-data] Endpoint called")
    try:
        dataset = await load_dataset_from_source()
        logger.info("[load-data] Data loaded successfully")
        return DataLoadResponse(status="success", message="Workbook loaded successfully", data=dataset.summary())
    except WorkbookLoadError as e:
        logger.error(f"[load-data] Error loading workbook: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error loading workbook: {str(e)}")

@app.post("/api/v1/upload-workbook", response_model=DataLoadResponse)
async def upload_workbook_endpoint(file: UploadFile = File(...)):
    logger.info(f"[upload-workbook] Endpoint called with file={file.filename}")
    try:
        content = await file.read()
        tables = await asyncio.to_thread(read_workbook, content)
        dataset = Dataset(tables, source=f"upload:{file.filename}", rules=app.state.rules)
        app.state.dataset = dataset
        logger.info("[upload-workbook] Data loaded successfully")
        return DataLoadResponse(status="success", message="Workbook uploaded successfully", data=dataset.summary())
    except WorkbookLoadError as e:
        logger.error(f"[upload-workbook] Error loading workbook: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error loading workbook: {str(e)}")

# Create a background scheduler
scheduler = BackgroundScheduler()

# Function to reload the workbook on a schedule
async def scheduled_refresh():
    try:
        logger.info("Running scheduled workbook refresh")
        await load_dataset_from_source()
        logger.info("Scheduled workbook refresh completed successfully")
    except WorkbookLoadError as e:
        logger.error(f"Error in scheduled workbook refresh: {str(e)}")

# Function to start the scheduler
def start_scheduler(hours: int):
    scheduler.add_job(
        lambda: asyncio.run(scheduled_refresh()),
        trigger=IntervalTrigger(hours=hours),
        id="scheduled_refresh",
        name=f"Reload workbook every {hours} hours",
        replace_existing=True
    )
    scheduler.start()
    logger.info(f"Scheduler started - Workbook will reload every {hours} hours")

@app.on_event("startup")
async def on_startup():
    if source_label(config):
        try:
            await load_dataset_from_source()
        except WorkbookLoadError as e:
            logger.error(f"Initial workbook load failed: {str(e)}")
    else:
        logger.warning("No workbook source configured; waiting for /api/v1/upload-workbook")
    if config["REFRESH_INTERVAL_HOURS"] > 0:
        start_scheduler(config["REFRESH_INTERVAL_HOURS"])
    logger.info("FastAPI application started")

@app.on_event("shutdown")
def on_shutdown():
    if scheduler.running:
        scheduler.shutdown()
    logger.info("FastAPI application shutdown")

app.include_router(v1_router, prefix="/api/v1")

if __name__ == "__main__":
    """
    Run the FastAPI app using Uvicorn.
    """
    try:
        logger.info("Starting FastAPI server with Uvicorn")
        uvicorn.run(
            app,
            host="0.0.0.0",
            port=8000,
            log_level="info",
            workers=1
        )
    except Exception as e:
        logger.error(f"Failed to start server: {str(e)}")
