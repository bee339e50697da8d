from __future__ import annotations

import logging
import os
import time
import uuid
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.status import HTTP_422_UNPROCESSABLE_ENTITY, HTTP_500_INTERNAL_SERVER_ERROR

from market_moodboard import __version__
from market_moodboard.api.http_logging import install_http_logging
from market_moodboard.api.routes.entrypoints import router as entrypoints_router
from market_moodboard.api.routes.health import router as health_router
from market_moodboard.api.services import AgentServices, moodboard_requirements
from market_moodboard.config import AgentConfig, load_config
from market_moodboard.normalization.normalizer import ResponseNormalizer
from market_moodboard.payments.gate import PaymentGate
from market_moodboard.payments.settlement import FacilitatorSettlement, LocalSettlement, SettlementClient
from market_moodboard.pipeline.moodboard import Clock, utc_now
from market_moodboard.providers.inference import InferenceClient, make_inference
from market_moodboard.providers.market_data import CoinGeckoMarketData, MarketDataClient
from market_moodboard.telemetry import InvocationObserver, LoggingObserver

logger = logging.getLogger("market_moodboard.api")


def _repo_root() -> Path:
    # `src/market_moodboard/api/main.py` -> repo root
    return Path(__file__).resolve().parents[3]


def _default_settlement(config: AgentConfig) -> SettlementClient:
    if config.settlement_mode == "local":
        return LocalSettlement()
    return FacilitatorSettlement(config.facilitator_url)


def create_app(
    config: Optional[AgentConfig] = None,
    *,
    settlement: Optional[SettlementClient] = None,
    market_data: Optional[MarketDataClient] = None,
    inference: Optional[InferenceClient] = None,
    observer: Optional[InvocationObserver] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    """
    Build the agent app. Collaborators default to the real implementations selected by `config`;
    tests pass fakes.
    """
    if config is None:
        # Load `.env` + `.env.local` when present (local dev convenience).
        load_dotenv(_repo_root() / ".env", override=False)
        load_dotenv(_repo_root() / ".env.local", override=False)
        config = load_config()

    observer = observer or LoggingObserver()
    settlement = settlement or _default_settlement(config)
    services = AgentServices(
        config=config,
        gate=PaymentGate(moodboard_requirements(config), settlement, observer),
        settlement=settlement,
        market_data=market_data
        or CoinGeckoMarketData(config.coingecko_base_url, timeout_sec=config.market_data_timeout_sec),
        inference=inference or make_inference(config),
        normalizer=ResponseNormalizer(observer=observer),
        observer=observer,
        clock=clock or utc_now,
    )

    app = FastAPI(title="market-moodboard-agent", version=__version__)
    app.state.services = services

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        request_id = f"val_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"
        logger.info("422 validation_error requestId=%s path=%s errors=%s", request_id, request.url.path, exc.errors())
        return JSONResponse(
            status_code=HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "ok": False,
                "error": "validation_error",
                "message": "Request body did not match expected schema.",
                "requestId": request_id,
                "details": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(Exception)
    async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        request_id = f"err_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"
        logger.exception("500 internal_error requestId=%s path=%s", request_id, request.url.path)
        return JSONResponse(
            status_code=HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "ok": False,
                "error": "internal_error",
                "message": "Unhandled server error.",
                "requestId": request_id,
            },
        )

    app.include_router(health_router)
    app.include_router(entrypoints_router)
    install_http_logging(app)

    logger.info(
        "agent ready networks=%s price=%s settlement=%s model=%s",
        ",".join(config.networks),
        config.default_price,
        config.settlement_mode,
        config.jatevo_model,
    )
    return app


def main() -> int:
    import uvicorn

    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper(), format="%(levelname)s %(name)s %(message)s")
    app = create_app()
    port = app.state.services.config.port
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
