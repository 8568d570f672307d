"""FastAPI application exposing the Whale Watch jobs over HTTP."""

import json
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import JSONResponse

from whalewatch import __version__
from whalewatch.core.errors import BadRequestError, WhaleWatchError
from whalewatch.jobs.whale_frenzy import WhaleBuy
from whalewatch.scheduler import JobScheduler
from whalewatch.service import WhaleWatchService
from whalewatch.utils.config import get_config
from whalewatch.utils.logger import setup_logger
from whalewatch.utils.timeutil import to_iso, utc_now

logger = logging.getLogger("whalewatch.webapp")

# Initialize FastAPI
app = FastAPI(
    title="Whale Watch",
    description="Whale frenzy detection, rejected-token review and mint monitoring",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

# Global instances
service: Optional[WhaleWatchService] = None
scheduler: Optional[JobScheduler] = None


@app.on_event("startup")
async def startup_event():
    """Start the service and, when enabled, the job scheduler."""
    global service, scheduler

    setup_logger()
    config = get_config()

    service = WhaleWatchService()
    await service.start()

    scheduler = JobScheduler(service)
    if config.scheduler_enabled:
        await scheduler.start()

    logger.info("Whale Watch web app started")


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the scheduler and the service."""
    if scheduler:
        await scheduler.stop()
    if service:
        await service.stop()

    logger.info("Whale Watch web app stopped")


@app.exception_handler(WhaleWatchError)
async def whalewatch_error_handler(request: Request, exc: WhaleWatchError):
    if exc.status_code >= 500:
        logger.error(f"{request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"{request.url.path} failed: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"error": str(exc)})


async def _json_body(request: Request) -> Dict[str, Any]:
    """Request body as a dict; an empty or invalid body counts as ``{}``."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return body if isinstance(body, dict) else {}


def _number_param(body: Dict[str, Any], key: str, default=None, cast=int, minimum=1):
    """Read a numeric body field no smaller than ``minimum``; anything else is a 400."""
    value = body.get(key)
    if value is None or value == "":
        return default

    try:
        if isinstance(value, bool):
            raise ValueError(value)
        number = cast(value)
    except (TypeError, ValueError):
        raise BadRequestError(f"{key} must be a number, got {value!r}")

    if number < minimum:
        raise BadRequestError(f"{key} must be at least {minimum}")
    return number


@app.post("/functions/whale-frenzy-detector")
async def whale_frenzy_detector(request: Request):
    """Whale frenzy actions: process_buy, check_frenzy and whale-list management."""
    body = await _json_body(request)
    action = body.get("action")
    user_id = body.get("user_id")
    frenzy = service.frenzy

    if action == "process_buy":
        results = await frenzy.process_buy(WhaleBuy.from_dict(body))
        return {"success": True, "results": results}

    if action == "check_frenzy":
        return await frenzy.check_frenzy(user_id)

    if action == "save_config":
        fields = {k: v for k, v in body.items() if k not in ("action", "user_id")}
        return {"success": True, "config": await frenzy.save_config(user_id, **fields)}

    if action == "save_secrets":
        wallet = await frenzy.save_trading_wallet(
            user_id, body.get("trading_private_key"), body.get("rpc_url")
        )
        return {"success": True, "wallet": wallet}

    if action == "add_whale":
        whale = await frenzy.add_whale(user_id, body.get("wallet_address"), body.get("nickname"))
        return {"success": True, "whale": whale}

    if action == "remove_whale":
        await frenzy.remove_whale(user_id, body.get("wallet_address"))
        return {"success": True}

    if action == "list_events":
        events = await frenzy.list_events(user_id, _number_param(body, "limit", 50))
        return {"success": True, "events": events}

    raise BadRequestError("Invalid action")


@app.api_route("/functions/pumpfun-rejected-reviewer", methods=["GET", "POST"])
async def pumpfun_rejected_reviewer(action: str = "review"):
    """Run a review cycle (``action=review``) or report counts (``action=status``)."""
    logger.info(f"pumpfun-rejected-reviewer action: {action}")

    if action == "review":
        stats = await service.reviewer.review()
        return {"success": True, "stats": stats.to_dict()}

    if action == "status":
        return await service.reviewer.status()

    return JSONResponse(status_code=400, content={"success": False, "error": f"Unknown action: {action}"})


@app.post("/functions/backcheck-rejected-tokens")
async def backcheck_rejected_tokens(request: Request):
    """Backcheck rejected tokens for false positives."""
    body = await _json_body(request)
    return await service.backcheck.run(
        batch_size=_number_param(body, "batch_size", 25),
        max_batches=_number_param(body, "max_batches", 20),
        offset=_number_param(body, "offset", 0, minimum=0),
    )


@app.post("/functions/mint-monitor-scanner")
async def mint_monitor_scanner(request: Request):
    """Mint monitor actions."""
    body = await _json_body(request)
    action = body.get("action")
    wallet = body.get("walletAddress")
    user_id = body.get("userId")
    monitor = service.mint_monitor

    logger.info(f"Mint monitor action: {action}")

    if action == "scan_now":
        return await monitor.scan_now(wallet, _number_param(body, "maxAgeHours", cast=float, minimum=0))

    if action == "add_to_cron":
        return await monitor.add_to_cron(
            user_id, wallet, body.get("sourceToken"), body.get("notificationChatIds")
        )

    if action == "remove_from_cron":
        return await monitor.remove_from_cron(user_id, wallet)

    if action == "run_cron":
        return await monitor.run_cron()

    if action == "get_monitored":
        return await monitor.get_monitored(user_id)

    if action == "test_notification":
        return await monitor.test_notification(body.get("testMint"))

    raise BadRequestError("Invalid action")


@app.get("/api/scheduler/status")
async def api_scheduler_status():
    """Get scheduler and per-job status."""
    return scheduler.get_status() if scheduler else {"running": False, "jobs": {}}


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": to_iso(utc_now()),
        "service_running": service is not None and service.running,
        "scheduler_running": scheduler is not None and scheduler.running,
    }
