from fastapi import FastAPI, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from typing import Optional, Dict, Any
from functools import lru_cache

from app.workflow.correction_pipeline import CorrectionPipeline, create_pipeline
from core.config.config import config
from core.models.database import init_db
from core.utils.error_handler import error_handler
from core.utils.logging_config import get_logger

logger = get_logger(__name__)

# Initialize audit database on startup
if config.AUDIT_DB_ENABLED:
    try:
        init_db()
        logger.info("Audit database initialized successfully")
    except Exception as e:
        logger.warning(f"Audit database initialization: {e}")

app = FastAPI(
    title="Invoice Memory Agent API",
    description="Applies learned vendor patterns to invoices and learns from human corrections",
    version="1.0.0"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache()
def get_pipeline() -> CorrectionPipeline:
    """Process-wide pipeline; overridden in tests"""
    return create_pipeline()


# Pydantic models
class LearnRequest(BaseModel):
    originalInvoice: Optional[Dict[str, Any]] = None
    finalInvoice: Optional[Dict[str, Any]] = None


class ResolutionRequest(BaseModel):
    context: str
    success: bool


class ResetResponse(BaseModel):
    success: bool
    message: str


# API Endpoints


@app.get("/health")
async def health():
    errors = error_handler.get_error_summary()
    return {
        "status": "healthy",
        "service": "invoice-memory-agent",
        "memory_file": config.MEMORY_FILE_PATH,
        "errors": {
            "total": errors['total_errors'],
            "unrecoverable": errors['unrecoverable']
        }
    }


@app.post("/process")
def process_invoice(invoice: Dict[str, Any], pipeline: CorrectionPipeline = Depends(get_pipeline)):
    """
    Process an invoice (flat or nested-fields shape)

    Returns:
        ProcessingResult
    """
    try:
        logger.info(f"Processing invoice: {invoice.get('id') or invoice.get('invoiceId')}")
        return pipeline.process(invoice)
    except Exception as e:
        logger.error(f"Failed to process invoice: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/learn")
def learn_from_feedback(request: LearnRequest, pipeline: CorrectionPipeline = Depends(get_pipeline)):
    """
    Learn from a human-approved invoice

    Returns:
        ProcessingResult with the learned memory updates
    """
    if not request.originalInvoice or not request.finalInvoice:
        raise HTTPException(status_code=400, detail="Missing invoice data")

    try:
        logger.info(f"Learning from correction for invoice: {request.originalInvoice.get('id')}")
        return pipeline.learn(request.originalInvoice, request.finalInvoice)
    except Exception as e:
        logger.error(f"Failed to learn from feedback: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/resolution")
def record_resolution(request: ResolutionRequest, pipeline: CorrectionPipeline = Depends(get_pipeline)):
    """Report whether a correction from memory turned out right"""
    try:
        found = pipeline.record_resolution(request.context, request.success)
    except Exception as e:
        logger.error(f"Failed to record resolution: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    if not found:
        raise HTTPException(status_code=404, detail=f"No correction memory for context '{request.context}'")
    return {"success": True, "context": request.context}


@app.get("/memory")
def get_memory(pipeline: CorrectionPipeline = Depends(get_pipeline)):
    """Full pattern store snapshot"""
    return pipeline.memory_snapshot()


@app.post("/reset", response_model=ResetResponse)
def reset_memory(pipeline: CorrectionPipeline = Depends(get_pipeline)):
    """Clear all learned memory"""
    try:
        pipeline.clear_memory()
    except Exception as e:
        logger.error(f"Failed to reset memory: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return ResetResponse(success=True, message="Memory cleared")


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting Invoice Memory Agent API on http://{config.APP_HOST}:{config.APP_PORT}")
    uvicorn.run(app, host=config.APP_HOST, port=config.APP_PORT, log_level="info", access_log=False)
