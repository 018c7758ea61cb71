"""
Inbound SMS Blueprint — provider webhook.

    POST /sms/inbound   form fields: From, Body

Always answers 200 with TwiML.  A <Message> acknowledgement is only sent
back when a reflection was stored; unknown senders, empty bodies and store
errors get an empty <Response/>.
"""

import logging

from flask import Blueprint, Response, request

from microcoach.services import reflection_service

logger = logging.getLogger(__name__)

sms_bp = Blueprint("sms_bp", __name__, url_prefix="/sms")

EMPTY_TWIML = "<Response></Response>"
ACK_TWIML = (
    "<Response>"
    "<Message>Thanks for your reflection. Keep going - one day at a time.</Message>"
    "</Response>"
)


def _twiml(body: str) -> Response:
    return Response(body, status=200, mimetype="text/xml")


@sms_bp.route("/inbound", methods=["POST"])
def inbound():
    sender = request.form.get("From", "")
    text = request.form.get("Body", "")

    try:
        reflection = reflection_service.record_inbound_reflection(sender, text)
    except Exception:
        logger.exception("Failed to store inbound reflection")
        return _twiml(EMPTY_TWIML)

    return _twiml(ACK_TWIML if reflection is not None else EMPTY_TWIML)
