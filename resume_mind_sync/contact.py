"""Contact form submission through the Web3Forms endpoint."""

from __future__ import annotations

import asyncio
import logging

import requests

from . import config
from .errors import ApiError, ConfigurationError, NetworkError

logger = logging.getLogger(__name__)

_TIMEOUT_S = 10


def _submit(payload: dict[str, str]) -> bool:
    try:
        resp = requests.post(config.WEB3FORMS_URL, data=payload, timeout=_TIMEOUT_S)
    except requests.RequestException as exc:
        logger.error("Contact form submission failed: %s", exc)
        raise NetworkError() from exc
    try:
        data = resp.json()
    except ValueError:
        data = None
    if not isinstance(data, dict):
        raise ApiError(resp.status_code, "Error sending message")
    return bool(data.get("success"))


async def submit_contact_form(name: str, email: str, subject: str, message: str) -> bool:
    """Send the contact form.

    Returns:
        True when the form service accepted the message.

    Raises:
        ConfigurationError: If ``WEB3FORMS_KEY`` is not configured; nothing
            is sent.
        NetworkError: If the service could not be reached.
    """
    if not config.WEB3FORMS_KEY:
        raise ConfigurationError("Missing form configuration. Please try again later.")
    payload = {
        "access_key": config.WEB3FORMS_KEY,
        "name": name,
        "email": email,
        "subject": subject,
        "message": message,
    }
    return await asyncio.to_thread(_submit, payload)
