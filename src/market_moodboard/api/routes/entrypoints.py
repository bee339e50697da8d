from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any, Dict, List

import anyio
from fastapi import APIRouter, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.status import (
    HTTP_402_PAYMENT_REQUIRED,
    HTTP_422_UNPROCESSABLE_ENTITY,
    HTTP_502_BAD_GATEWAY,
)

from market_moodboard import __version__
from market_moodboard.api.models import InvocationRequest
from market_moodboard.api.services import AgentServices, format_usdc
from market_moodboard.errors import SettlementUnavailable, UpstreamError
from market_moodboard.normalization.schemas import moodboard_json_schema
from market_moodboard.payments.binding import request_fingerprint
from market_moodboard.payments.gate import PaidInvocation
from market_moodboard.payments.models import (
    PAYMENT_ERROR_HEADER,
    PAYMENT_HEADER,
    PAYMENT_RESPONSE_HEADER,
    Challenge,
    PaymentChallenge,
    Rejected,
    RejectionReason,
)
from market_moodboard.pipeline.moodboard import MOODBOARD_ENTRYPOINT, analyze_moodboard

logger = logging.getLogger("market_moodboard.api")

router = APIRouter(tags=["entrypoints"])


def _services(request: Request) -> AgentServices:
    return request.app.state.services


def _validation_error(path: str, details: List[Dict[str, Any]]) -> JSONResponse:
    request_id = f"val_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"
    logger.info("422 validation_error requestId=%s path=%s errors=%s", request_id, path, details)
    return JSONResponse(
        status_code=HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "ok": False,
            "error": "validation_error",
            "message": "Request body did not match expected schema.",
            "requestId": request_id,
            "details": jsonable_encoder(details),
        },
    )


def _payment_failure(error: str, accepts: List[Any]) -> JSONResponse:
    body = PaymentChallenge(error=error, accepts=list(accepts)).to_wire()
    return JSONResponse(status_code=HTTP_402_PAYMENT_REQUIRED, content=body, headers={PAYMENT_ERROR_HEADER: error})


@router.post(MOODBOARD_ENTRYPOINT.path)
async def invoke_moodboard(request: Request) -> JSONResponse:
    services = _services(request)
    path = MOODBOARD_ENTRYPOINT.path

    # The proof is bound to these exact bytes.
    body = await request.body()
    try:
        payload = json.loads(body) if body.strip() else {}
        parsed = InvocationRequest.model_validate(payload)
    except ValidationError as exc:
        return _validation_error(path, exc.errors())
    except ValueError as exc:
        return _validation_error(path, [{"type": "json_invalid", "loc": ["body"], "msg": str(exc)}])

    resource = services.resource_for(path)
    invocation = PaidInvocation(request=parsed, resource=resource, fingerprint=request_fingerprint(body))
    decision = await anyio.to_thread.run_sync(services.gate.evaluate, invocation, request.headers.get(PAYMENT_HEADER))

    if isinstance(decision, Challenge):
        return JSONResponse(status_code=HTTP_402_PAYMENT_REQUIRED, content=decision.to_wire())
    if isinstance(decision, Rejected):
        return _payment_failure(decision.reason.value, decision.accepts)

    config = services.config
    try:
        result = await analyze_moodboard(
            limit=parsed.limit,
            vs_currency=parsed.vs_currency,
            market_data=services.market_data,
            inference=services.inference,
            model_id=config.jatevo_model,
            timeout_sec=config.inference_timeout_sec,
            normalizer=services.normalizer,
            clock=services.clock,
        )
    except UpstreamError as e:
        # Not settled: the caller is not billed for failed work.
        services.observer.upstream_failed(e.collaborator, e.message)
        return JSONResponse(
            status_code=HTTP_502_BAD_GATEWAY,
            content={
                "ok": False,
                "error": "upstream_error",
                "collaborator": e.collaborator,
                "message": e.message,
                "requestId": f"up_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}",
            },
        )

    accepts = services.gate.accepts(resource)
    try:
        receipt = await anyio.to_thread.run_sync(services.settlement.settle, decision.requirement, decision.proof)
    except SettlementUnavailable as e:
        services.observer.proof_rejected(resource, RejectionReason.SETTLEMENT_UNREACHABLE.value, str(e))
        return _payment_failure(RejectionReason.SETTLEMENT_UNREACHABLE.value, accepts)
    if not receipt.success:
        reason = receipt.error_reason or RejectionReason.SETTLEMENT_UNREACHABLE.value
        services.observer.proof_rejected(resource, reason, "settlement failed")
        return _payment_failure(reason, accepts)

    services.observer.payment_settled(resource, receipt)
    return JSONResponse(status_code=200, content=result, headers={PAYMENT_RESPONSE_HEADER: receipt.to_header()})


def _entrypoint_listing(services: AgentServices) -> Dict[str, Any]:
    config = services.config
    return {
        "key": MOODBOARD_ENTRYPOINT.key,
        "description": MOODBOARD_ENTRYPOINT.description,
        "path": MOODBOARD_ENTRYPOINT.path,
        "price": {
            "amount": str(config.default_price),
            "display": format_usdc(config.default_price),
            "networks": list(config.networks),
        },
        "input_schema": InvocationRequest.model_json_schema(),
        "output_schema": moodboard_json_schema(),
    }


@router.get("/entrypoints")
async def list_entrypoints(request: Request) -> Dict[str, Any]:
    return {"items": [_entrypoint_listing(_services(request))]}


@router.get("/.well-known/agent.json")
async def agent_manifest(request: Request) -> Dict[str, Any]:
    services = _services(request)
    config = services.config
    listing = _entrypoint_listing(services)
    return {
        "name": "market-moodboard-agent",
        "version": __version__,
        "description": "Analyze the top coins by market cap and return a validated market moodboard",
        "url": config.api_base_url,
        "entrypoints": {
            MOODBOARD_ENTRYPOINT.key: {
                "description": listing["description"],
                "path": listing["path"],
                "url": services.resource_for(MOODBOARD_ENTRYPOINT.path),
                "pricing": {"invoke": listing["price"]["display"]},
                "input_schema": listing["input_schema"],
                "output_schema": listing["output_schema"],
            }
        },
        "payments": {
            "method": "x402",
            "network": config.primary_network,
            "networks": list(config.networks),
            "payee": config.pay_to,
            "facilitator": config.facilitator_url if config.settlement_mode == "facilitator" else None,
            "settlement": config.settlement_mode,
        },
    }
