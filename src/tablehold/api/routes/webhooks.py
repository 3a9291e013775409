from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Request
from starlette.concurrency import run_in_threadpool

from tablehold.api.dependencies import Container, get_container
from tablehold.api.middleware.request_id import get_request_id
from tablehold.application.dto.responses import WebhookAckResponse
from tablehold.infrastructure.observability.otel import current_trace_context

router = APIRouter()


@router.post("/v1/webhooks/stripe", response_model=WebhookAckResponse)
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None),
    container: Container = Depends(get_container),
) -> WebhookAckResponse:
    # Signature verification needs the body exactly as sent.
    raw_body = await request.body()
    trace_ctx = current_trace_context(get_request_id())
    return await run_in_threadpool(
        container.payment_webhook.execute,
        raw_body,
        stripe_signature,
        trace_ctx,
    )
