"""
Gateway webhook endpoint.

The gateway redelivers a callback until it sees a 2xx, so every
callback is acknowledged, whatever happened to it: applied,
duplicate, unknown, mismatched or malformed. The result is logged
and returned for the gateway operator's benefit only.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError

from mobile_payments.api.deps import get_reconciler
from mobile_payments.logging_config import get_logger
from mobile_payments.schemas.callback import CallbackAck, CallbackPayload
from mobile_payments.services.callback_reconciler import CallbackReconciler

logger = get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["Callbacks"])


@router.post("/callbacks", response_model=CallbackAck)
async def receive_callback(
    request: Request,
    reconciler: CallbackReconciler = Depends(get_reconciler),
):
    """
    Apply a gateway result and acknowledge it.

    The body is parsed here rather than by FastAPI so that a
    malformed callback is acknowledged instead of getting a 422.
    """
    raw = await request.body()
    try:
        payload = CallbackPayload.model_validate_json(raw)
    except ValidationError as e:
        logger.warning(
            "callback_malformed",
            errors=e.errors(include_url=False, include_context=False),
        )
        return CallbackAck(result="malformed")

    result = await run_in_threadpool(reconciler.handle_callback, payload)
    return CallbackAck(result=result.value)
