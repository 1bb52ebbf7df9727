import json
import logging
from typing import Optional, Dict, Any
from fastapi import APIRouter, Depends, HTTPException, Header, Query, Request, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from app.database.connection import get_db
from app.integrations.base import WebhookError
from app.integrations.slack.webhook import SlackWebhookHandler
from app.integrations.zendesk.webhook import ZendeskWebhookHandler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def get_slack_webhook_handler(db: Session = Depends(get_db)) -> SlackWebhookHandler:
    """Dependency to get Slack webhook handler"""
    return SlackWebhookHandler(db)


def get_zendesk_webhook_handler(db: Session = Depends(get_db)) -> ZendeskWebhookHandler:
    """Dependency to get Zendesk webhook handler"""
    return ZendeskWebhookHandler(db)


def _parse_json(body: bytes) -> Dict[str, Any]:
    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")
    return payload


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


@router.post("/slack/events")
async def slack_events(
    request: Request,
    x_slack_request_timestamp: Optional[str] = Header(None),
    x_slack_signature: Optional[str] = Header(None),
    handler: SlackWebhookHandler = Depends(get_slack_webhook_handler),
):
    """Slack Events API endpoint"""
    body = await request.body()
    payload = _parse_json(body)

    try:
        result = handler.handle_webhook(
            payload=payload,
            body=body,
            timestamp=x_slack_request_timestamp,
            signature=x_slack_signature,
        )
    except WebhookError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)

    if "challenge" in result:
        return {"challenge": result["challenge"]}
    if result.get("status") == "rejected":
        return PlainTextResponse(result["reason"], status_code=status.HTTP_200_OK)
    if result.get("status") == "queued":
        return PlainTextResponse("Ok", status_code=status.HTTP_202_ACCEPTED)
    return PlainTextResponse("Ok", status_code=status.HTTP_200_OK)


@router.post("/zendesk/events")
def zendesk_events(
    payload: Dict[str, Any],
    id: Optional[str] = Query(None, description="Webhook public id of the Zendesk connection"),
    authorization: Optional[str] = Header(None),
    handler: ZendeskWebhookHandler = Depends(get_zendesk_webhook_handler),
):
    """Zendesk ticket comment webhook"""
    try:
        return handler.handle_webhook(
            payload=payload,
            webhook_public_id=id,
            bearer_token=_bearer_token(authorization),
        )
    except WebhookError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
