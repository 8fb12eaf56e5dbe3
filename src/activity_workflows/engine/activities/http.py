from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import requests

from .base import ActivityMetadata, CodeActivity, InputDescriptor, OutputDescriptor

if TYPE_CHECKING:
    from ..context import ActivityExecutionContext

logger = logging.getLogger(__name__)


class SendHttpRequest(CodeActivity):
    """Send an HTTP request through the `requests.Session` service.

    Non-2xx responses raise, which faults the activity.
    """

    metadata = ActivityMetadata(
        display_name="HTTP Request",
        description="Send an HTTP request and record the response.",
        category="HTTP",
    )
    inputs = (
        InputDescriptor("url", str, required=True),
        InputDescriptor("method", str, default="GET"),
        InputDescriptor("headers", dict),
        InputDescriptor("body"),
        InputDescriptor("timeout", (int, float), default=30.0),
    )
    outputs = (
        OutputDescriptor("status_code", int),
        OutputDescriptor("result", description="Parsed JSON body, or text."),
    )

    def __init__(self, url: object, **kwargs: object) -> None:
        super().__init__(url=url, **kwargs)

    def run(self, context: ActivityExecutionContext) -> object:
        session: requests.Session = context.get_service(requests.Session)
        method = str(context.get("method")).upper()
        url = context.get("url")
        body = context.get("body")

        logger.info(
            "Sending HTTP request",
            extra={"instance_id": context.instance_id, "method": method, "url": url},
        )
        response = session.request(
            method,
            url,
            headers=context.get("headers") or None,
            json=body,
            timeout=context.get("timeout"),
        )
        response.raise_for_status()

        context.set("status_code", response.status_code)
        if "json" in response.headers.get("Content-Type", ""):
            return response.json()
        return response.text
