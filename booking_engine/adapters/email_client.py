from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict

import requests

logger = logging.getLogger(__name__)

RESEND_ENDPOINT = "https://api.resend.com/emails"
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    text: str
    html: str = ""


@dataclass
class EmailClient:
    api_key: str
    sender_email: str
    endpoint: str = RESEND_ENDPOINT
    timeout: float = 10

    def send(self, message: EmailMessage) -> Dict[str, Any]:
        if not self.api_key or not self.sender_email:
            logger.info("Email not sent, service not configured: to=%s subject=%s", message.to, message.subject)
            return {"success": False, "error": "Email service not configured", "retryable": False}

        payload = {
            "from": self.sender_email,
            "to": [message.to],
            "subject": message.subject,
            "text": message.text,
        }
        if message.html:
            payload["html"] = message.html

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        response = requests.post(self.endpoint, headers=headers, json=payload, timeout=self.timeout)
        if response.status_code not in (200, 202):
            return {
                "success": False,
                "error": f"Email provider returned status {response.status_code}: {response.text}",
                "retryable": response.status_code in RETRYABLE_STATUS_CODES,
            }

        return {"success": True, "status": response.status_code, "recipient": message.to}
