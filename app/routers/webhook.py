from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from app.core.normalize import mask_mapping
from app.metrics import record_webhook
from app.services.audit import audit_event
from app.services.webhook import (
    WebhookIngestor,
    WebhookRejected,
    WebhookStage,
    caller_secret,
    get_webhook_ingestor,
    payload_from_body,
)

router = APIRouter(tags=["webhook"])


@router.post("/webhook")
async def payment_webhook(req: Request, ingestor: WebhookIngestor = Depends(get_webhook_ingestor)):
    raw_body = await req.body()
    payload = payload_from_body(req.headers.get("content-type", ""), raw_body)
    provided = caller_secret(ingestor.settings, req.headers, req.query_params, payload)
    audit_event(
        "webhook_received",
        "",
        req,
        stage=WebhookStage.RECEIVED.value,
        headers=mask_mapping(dict(req.headers)),
        body_keys=sorted(payload.keys()),
    )

    try:
        result = ingestor.ingest(payload, provided)
    except WebhookRejected as exc:
        record_webhook("rejected")
        audit_event(
            "webhook",
            "",
            req,
            outcome="failure",
            stage=WebhookStage.REJECTED.value,
            failed_at=exc.stage.value,
            error=exc.detail,
            status_code=exc.status_code,
        )
        return JSONResponse({"ok": False, "error": exc.detail}, status_code=exc.status_code)
    except Exception as exc:
        # Provider redelivers on 5xx.
        record_webhook("error")
        audit_event(
            "webhook",
            "",
            req,
            outcome="failure",
            stage=WebhookStage.REJECTED.value,
            failed_at=WebhookStage.MATCHED.value,
            error=repr(exc),
            status_code=500,
        )
        return JSONResponse({"ok": False, "error": "unexpected_error"}, status_code=500)

    if result.probe:
        record_webhook("probe")
        audit_event("webhook", "", req, outcome="success", stage=result.stage.value, probe=True)
        return PlainTextResponse("OK")

    record_webhook("applied", result.status)
    audit_event(
        "webhook",
        result.email,
        req,
        outcome="success",
        stage=result.stage.value,
        order_id=result.order_id,
        status=result.status,
        action=result.action,
    )
    return result.ack()
