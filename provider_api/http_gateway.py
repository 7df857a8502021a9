"""
HTTP channel gateway (minimal, dependency-free).

Delivers each outbound message by POSTing its JSON form to the channel
provider's send endpoint. The request is built with Python's standard library
and carries a short timeout so a slow provider cannot stall the pacer for
longer than one message. Errors are raised with a small taxonomy so the pacer
can log timeouts separately from HTTP or network failures.
"""

from __future__ import annotations

import logging
import socket
from typing import Optional
from urllib import error as urlerror
from urllib import request as urlrequest

from config.logging_config import mask_user_id
from shared.models import OutboundMessage
from .base import ChannelGateway

logger = logging.getLogger(__name__)


class ChannelGatewayError(Exception):
    """Non-timeout delivery failure, for example a non-2xx HTTP response."""


class ChannelGatewayTimeoutError(ChannelGatewayError):
    """The channel provider did not answer within the configured timeout."""


class HttpChannelGateway(ChannelGateway):
    """
    POST ``OutboundMessage`` payloads to ``{base_url}/messages``.

    Args:
        base_url (str): Channel provider base URL (e.g., "http://localhost:3000").
        api_token (Optional[str]): Bearer token sent in the Authorization header, if any.
        timeout_s (float): Socket timeout in seconds.
    """

    def __init__(self, base_url: str, api_token: Optional[str] = None, timeout_s: float = 5.0) -> None:
        self.url = f"{base_url.rstrip('/')}/messages"
        self.api_token = api_token
        self.timeout_s = timeout_s

    def send(self, message: OutboundMessage) -> None:
        data = message.model_dump_json().encode("utf-8")
        req = urlrequest.Request(self.url, data=data, method="POST")
        req.add_header("Content-Type", "application/json")
        if self.api_token:
            req.add_header("Authorization", f"Bearer {self.api_token}")

        try:
            with urlrequest.urlopen(req, timeout=self.timeout_s) as resp:
                status = getattr(resp, "status", 200)
                if not 200 <= status < 300:
                    body = resp.read().decode("utf-8", errors="replace")
                    raise ChannelGatewayError(f"Channel HTTP {status}: {body[:200]}")
        except socket.timeout as exc:
            raise ChannelGatewayTimeoutError(f"Send timed out after {self.timeout_s}s") from exc
        except urlerror.HTTPError as exc:
            raise ChannelGatewayError(f"Channel HTTP {exc.code}: {exc.reason}") from exc
        except urlerror.URLError as exc:
            if isinstance(exc.reason, socket.timeout):
                raise ChannelGatewayTimeoutError(f"Send timed out after {self.timeout_s}s") from exc
            raise ChannelGatewayError(f"Network error calling channel gateway: {exc}") from exc
        logger.debug(f"[HttpChannelGateway] Delivered message to {mask_user_id(message.userId)}: {message.content[:50]}")
