"""
Carrier webhook endpoints - inbound SMS from Twilio.

Security layers (in order):
1. Signature validation (X-Twilio-Signature)
2. Sender normalization (unaddressable sender is a 400)
3. Consent transition + audit (services.consent)

The TwiML reply carries the opt-out confirmation or HELP text. Ordinary
replies get an empty <Response/>.
"""
import logging
import uuid

from fastapi import APIRouter, Request, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession
from twilio.twiml.messaging_response import MessagingResponse

from revive.config import get_settings
from revive.database import get_db
from revive.services.compliance import ConsentIntent
from revive.services.consent import InboundOutcome, apply_inbound
from revive.utils.phone import InvalidPhoneInput
from revive.utils.webhook_signatures import get_webhook_url, validate_twilio_signature

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/webhook", tags=["webhooks"])


async def _validate_signature(request: Request, form_params: dict) -> None:
    """Validate the Twilio signature and raise 401 if invalid."""
    settings = get_settings()
    if not settings.twilio_validate_signatures:
        return
    if not settings.twilio_auth_token:
        logger.warning("TWILIO_AUTH_TOKEN not set - accepting unsigned webhook")
        return

    signature = request.headers.get("X-Twilio-Signature", "")
    if not validate_twilio_signature(
        settings.twilio_auth_token, signature, get_webhook_url(request), form_params,
    ):
        client_ip = request.client.host if request.client else "unknown"
        logger.warning("Invalid webhook signature: source=twilio ip=%s", client_ip)
        raise HTTPException(status_code=401, detail="Invalid webhook signature")


def build_reply(outcome: InboundOutcome) -> str:
    """TwiML for the keyword auto-reply. Repeat opt-outs are confirmed again."""
    settings = get_settings()
    twiml = MessagingResponse()
    if outcome.intent == ConsentIntent.OPT_OUT:
        twiml.message(settings.opt_out_reply.format(brand_name=settings.brand_name))
    elif outcome.intent == ConsentIntent.HELP:
        twiml.message(settings.help_reply.format(support_contact=settings.support_contact))
    return str(twiml)


@router.post("/twilio/sms/{account_id}")
async def twilio_sms_webhook(
    account_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """
    Twilio inbound SMS webhook.
    Twilio sends form-encoded data, not JSON.
    """
    form_data = await request.form()
    form_params = dict(form_data)

    await _validate_signature(request, form_params)

    try:
        account = uuid.UUID(account_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid account id")

    from_phone = form_data.get("From", "")
    body_text = form_data.get("Body", "")
    if not from_phone:
        raise HTTPException(status_code=400, detail="Missing From")

    try:
        outcome = await apply_inbound(db, account, from_phone, body_text)
    except InvalidPhoneInput as e:
        logger.warning("Inbound SMS rejected: %s", str(e), extra={"account_id": account_id})
        raise HTTPException(status_code=400, detail="Invalid phone number")
    except Exception as e:
        logger.error(
            "Inbound SMS processing failed for account %s: %s",
            account_id[:8], str(e), exc_info=True,
        )
        raise HTTPException(status_code=500, detail="Internal processing error")

    return Response(content=build_reply(outcome), media_type="application/xml")
