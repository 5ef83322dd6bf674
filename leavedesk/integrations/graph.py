"""Microsoft Graph client — mail delivery and mailbox automatic replies.

App-only (client credentials) auth. Each call fetches its own token; the
calls are rare (one per transition) and run in background tasks.
"""

from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from leavedesk.config import settings

logger = logging.getLogger(__name__)

GRAPH_SCOPE = "https://graph.microsoft.com/.default"
GRAPH_BASE = "https://graph.microsoft.com/v1.0"


class GraphError(RuntimeError):
    """Graph returned an error or is not configured."""


class GraphClient:
    """Thin async wrapper over the handful of Graph endpoints we use."""

    def __init__(
        self,
        *,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        sender: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.sender = sender
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "GraphClient":
        return cls(
            tenant_id=settings.GRAPH_TENANT_ID,
            client_id=settings.GRAPH_CLIENT_ID,
            client_secret=settings.GRAPH_CLIENT_SECRET,
            sender=settings.GRAPH_SENDER,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    @property
    def token_url(self) -> str:
        return f"https://login.microsoftonline.com/{self.tenant_id}/oauth2/v2.0/token"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def get_token(self, client: httpx.AsyncClient) -> str:
        if not (self.tenant_id and self.client_id and self.client_secret):
            raise GraphError("Missing Graph credentials (tenant / client id / client secret).")
        resp = await client.post(
            self.token_url,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "scope": GRAPH_SCOPE,
                "grant_type": "client_credentials",
            },
        )
        if resp.status_code != 200:
            raise GraphError(f"Graph token error: {resp.status_code} {resp.text}")
        return resp.json()["access_token"]

    async def _request(self, method: str, path: str, payload: dict[str, Any]) -> None:
        async with self._client() as client:
            token = await self.get_token(client)
            resp = await client.request(
                method,
                f"{GRAPH_BASE}{path}",
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
            )
            if resp.status_code >= 400:
                raise GraphError(f"Graph {method} {path} failed {resp.status_code}: {resp.text}")

    # ── Mail ────────────────────────────────────────────────────────

    async def send_mail(self, *, to: str, subject: str, html: str) -> None:
        if not self.sender:
            raise GraphError("GRAPH_SENDER is not configured.")
        payload = {
            "message": {
                "subject": subject,
                "body": {"contentType": "HTML", "content": html},
                "toRecipients": [{"emailAddress": {"address": to}}],
            },
            "saveToSentItems": False,
        }
        await self._request("POST", f"/users/{quote(self.sender)}/sendMail", payload)
        logger.info("Email sent to %s: %s", to, subject)

    # ── Mailbox automatic replies ───────────────────────────────────

    async def disable_automatic_replies(self, user_email: str) -> None:
        payload = {"automaticRepliesSetting": {"status": "disabled"}}
        await self._request("PATCH", f"/users/{quote(user_email)}/mailboxSettings", payload)

    async def schedule_automatic_replies(
        self,
        user_email: str,
        *,
        start: str,
        end: str,
        time_zone: str,
        message: str = "",
    ) -> None:
        payload = {
            "automaticRepliesSetting": {
                "status": "scheduled",
                "scheduledStartDateTime": {"dateTime": start, "timeZone": time_zone},
                "scheduledEndDateTime": {"dateTime": end, "timeZone": time_zone},
                "internalReplyMessage": message,
                "externalReplyMessage": message,
                "externalAudience": "contactsOnly",
            }
        }
        await self._request("PATCH", f"/users/{quote(user_email)}/mailboxSettings", payload)


def get_graph_client() -> GraphClient:
    return GraphClient.from_settings()
