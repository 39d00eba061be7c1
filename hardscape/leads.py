"""
Lead capture and design emails via the Resend REST API.
"""

import json
import logging
import os
import threading
from datetime import datetime, timezone
from html import escape
from typing import Optional

import requests
from pydantic import BaseModel, ConfigDict

from . import config

logger = logging.getLogger(__name__)

_leads_lock = threading.Lock()


class EmailError(Exception):
    """An email could not be handed to Resend."""


class EmailRequest(BaseModel):
    name: str
    email: str
    phone: str = ""
    design_image: Optional[str] = None
    type: str = "download"


class Lead(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = ""
    email: str = ""
    phone: str = ""
    type: str = ""
    timestamp: Optional[str] = None


def send_email(to: list[str], subject: str, html: str, cc: Optional[list[str]] = None) -> dict:
    """POST one email to Resend. Raises EmailError on any failure."""
    if not config.RESEND_API_KEY:
        raise EmailError("RESEND_API_KEY not set")

    payload = {
        "from": config.EMAIL_FROM,
        "to": to,
        "subject": subject,
        "html": html,
    }
    if cc:
        payload["cc"] = cc

    try:
        response = requests.post(
            f"{config.RESEND_API_BASE}/emails",
            json=payload,
            headers={
                "Authorization": f"Bearer {config.RESEND_API_KEY}",
                "Content-Type": "application/json",
            },
            timeout=30,
        )
        response.raise_for_status()
        return response.json()
    except (requests.RequestException, ValueError) as e:
        raise EmailError(f"Resend request failed: {e}") from e


def design_email_html(req: EmailRequest) -> str:
    name = escape(req.name)
    image = (
        f'<img src="{escape(req.design_image, quote=True)}" alt="Your Design" '
        f'style="width:100%;max-width:500px;border-radius:8px;margin:20px 0;">'
        if req.design_image else ""
    )
    kind = "quote" if req.type == "quote" else "design download"

    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 20px auto;">
      <div style="background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: white; padding: 30px; text-align: center;">
        <div style="font-size: 28px; font-weight: bold;">AI Hardscape Designer</div>
        <p>Your Dream Space Design is Ready!</p>
      </div>
      <div style="padding: 30px;">
        <h2>Hello {name},</h2>
        <p>Thank you for using our AI Hardscape Designer! Your transformed outdoor space design is below.</p>
        {image}
        <div style="background-color: #f8f9fa; border-left: 4px solid #667eea; padding: 15px;">
          <h3>Your Information:</h3>
          <p><strong>Name:</strong> {name}</p>
          <p><strong>Email:</strong> {escape(req.email)}</p>
          <p><strong>Phone:</strong> {escape(req.phone)}</p>
        </div>
        <p>Reply to this email to schedule a free consultation with our design experts.</p>
        <p>Best regards,<br>The AI Hardscape Designer Team</p>
      </div>
      <div style="background-color: #f8f9fa; padding: 20px; text-align: center; color: #666; font-size: 12px;">
        <p>This email was sent because you requested a {kind} on our website.</p>
      </div>
    </div>
    """


def send_design_email(req: EmailRequest) -> dict:
    subject = (
        "Your Hardscape Design Quote Request"
        if req.type == "quote"
        else "Your Hardscape Design is Ready!"
    )
    cc = [config.ADMIN_EMAIL] if config.ADMIN_EMAIL else None
    result = send_email([req.email], subject, design_email_html(req), cc=cc)
    logger.info(f"Design email sent to {req.email}")
    return result


def append_lead(lead: Lead, leads_file: Optional[str] = None) -> dict:
    """
    Append a lead to the JSON leads file and return the stored record.

    An unreadable or corrupt file is replaced by a fresh list.
    """
    leads_file = leads_file or config.LEADS_FILE
    record = {**lead.model_dump(), "captured_at": datetime.now(timezone.utc).isoformat()}

    with _leads_lock:
        leads = []
        if os.path.exists(leads_file):
            try:
                with open(leads_file, "r") as f:
                    leads = json.load(f)
                if not isinstance(leads, list):
                    leads = []
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Error reading leads file: {e}")
                leads = []

        leads.append(record)
        with open(leads_file, "w") as f:
            json.dump(leads, f, indent=2)

    return record


def notify_new_lead(lead: Lead) -> bool:
    """Email the admin about a new lead. Returns False if it could not be sent."""
    if not config.ADMIN_EMAIL:
        logger.info("ADMIN_EMAIL not set, skipping lead notification")
        return False

    html = f"""
    <h3>New Lead Captured</h3>
    <p><strong>Type:</strong> {escape(lead.type)}</p>
    <p><strong>Name:</strong> {escape(lead.name)}</p>
    <p><strong>Email:</strong> {escape(lead.email)}</p>
    <p><strong>Phone:</strong> {escape(lead.phone)}</p>
    <p><strong>Timestamp:</strong> {escape(lead.timestamp or "")}</p>
    """
    try:
        send_email([config.ADMIN_EMAIL], f"New {lead.type} Lead: {lead.name}", html)
        return True
    except EmailError as e:
        logger.error(f"Failed to send lead notification: {e}")
        return False
