import asyncio
import logging
import traceback
from contextlib import asynccontextmanager, suppress
from typing import Any, Dict, Optional, Union

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from api_clients.loyalty_client import LoyaltyClient
from engine.errors import TemplateNotFoundError, TriggerValidationError
from engine.notification_service import NotificationService
from models.results import DispatchResult
from scheduler.loyalty_expiration import LoyaltyExpirationJob
from scheduler.scheduler_loop import SchedulerLoop
from utils.config import load_config
from utils.logging_config import configure_logging

config = load_config()
logger = configure_logging(config.log_level, config.log_file)

logger.info("=" * 80)
logger.info("NOTIFICATION SERVICE STARTING")
logger.info("=" * 80)

service = NotificationService.from_config(config)


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = None
    task = None
    if config.scheduler_interval_seconds > 0:
        scheduler = SchedulerLoop(
            service.stock_monitor,
            LoyaltyExpirationJob(LoyaltyClient(config), service.dispatcher),
            interval_seconds=config.scheduler_interval_seconds,
        )
        task = asyncio.create_task(scheduler.start())
    yield
    if scheduler is not None:
        scheduler.stop()
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
    await service.close()


app = FastAPI(title="Storefront Notification Service", lifespan=lifespan)


class SendTemplateEmailRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    template_type: Optional[str] = Field(None, alias="templateType")
    recipient: Optional[str] = Field(None, alias="to")
    data: Optional[Dict[str, Any]] = None
    cc_admin: bool = Field(False, alias="ccAdmin")


class LoyaltyNotifyRequest(BaseModel):
    event: str
    data: Dict[str, Any]


class StockCheckRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: Optional[Union[str, int]] = Field(None, alias="productId")


LOYALTY_EVENTS = {
    "points_earned": "trigger_loyalty_points_earned",
    "points_redeemed": "trigger_loyalty_points_redeemed",
    "tier_upgrade": "trigger_loyalty_tier_upgrade",
    "points_expiring": "trigger_loyalty_points_expiring",
}


def _dispatch_response(result: DispatchResult):
    if result.success:
        return result.model_dump()
    if result.error_kind == TriggerValidationError.kind:
        raise HTTPException(status_code=400, detail=result.error)
    status = 404 if result.error_kind == TemplateNotFoundError.kind else 500
    return JSONResponse(status_code=status, content=result.model_dump())


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/email-templates/{key}")
async def get_email_template(key: str):
    template = await service.get_email_template(key)
    if template is None:
        raise HTTPException(status_code=404, detail=f"Template '{key}' not found")
    return template.model_dump(mode="json")


@app.post("/api/send-template-email")
async def send_template_email(payload: SendTemplateEmailRequest):
    logger.info(f"Send request for template '{payload.template_type}' to {payload.recipient}")
    result = await service.send_template_email(
        payload.template_type, payload.recipient, payload.data, cc_admin=payload.cc_admin
    )
    return _dispatch_response(result)


@app.post("/api/send-shipping-notification")
async def send_shipping_notification(payload: Dict[str, Any]):
    result = await service.trigger_shipping_notification(payload)
    return _dispatch_response(result)


@app.post("/api/loyalty/notify")
async def loyalty_notify(payload: LoyaltyNotifyRequest):
    method = LOYALTY_EVENTS.get(payload.event)
    if method is None:
        raise HTTPException(status_code=400, detail=f"Unknown loyalty event '{payload.event}'")
    sent = await getattr(service, method)(payload.data)
    return {"success": sent}


@app.post("/api/stock-monitoring/check")
async def check_stock(payload: StockCheckRequest):
    if payload.product_id is None or payload.product_id == "":
        raise HTTPException(status_code=400, detail="Product ID required")
    alert_sent = await service.check_product_low_stock_by_id(payload.product_id)
    return {"success": True, "alertSent": alert_sent}


@app.post("/api/stock-monitoring/check-all")
async def check_all_stock():
    summary = await service.check_all_products_low_stock()
    return {"success": True, "checked": summary.checked, "alerts": summary.alerts}


@app.post("/api/clear-template-cache")
async def clear_template_cache():
    service.clear_template_cache()
    return {"success": True}


@app.get("/api/smtp/status")
async def smtp_status():
    try:
        settings = await service.get_guaranteed_smtp_settings()
        connection = await service.test_smtp_connection()
    except Exception as e:
        logger.error(f"SMTP status check failed: {e}")
        logger.error(traceback.format_exc())
        raise HTTPException(status_code=500, detail=str(e))
    return {"config": settings.masked(), "connection": connection.model_dump()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8050)
