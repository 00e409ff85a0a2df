"""OrgX REST client.

Thin request/response wrapper around the OrgX entity API.  Every call is
synchronous with an explicit timeout; failures (transport errors and
non-2xx responses) raise ``OrgxApiError`` so callers can fall back to the
local outbox.

Required env vars:
    ORGX_API_KEY   – API key sent as a bearer token
    ORGX_BASE_URL  – defaults to https://www.useorgx.com
    ORGX_USER_ID   – optional, sent as ``X-Orgx-User-Id``
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Optional

import httpx

from orgxclaw import __version__
from orgxclaw.core.snapshot import OrgSnapshot

logger = logging.getLogger("orgxclaw.orgx_client")


class OrgxApiError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


@dataclass
class OrgxClient:
    base_url: str
    api_key: Optional[str]
    user_id: Optional[str] = None
    timeout: float = 15.0
    transport: Optional[httpx.BaseTransport] = field(default=None, repr=False)

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": f"orgxclaw/{__version__}",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if self.user_id:
            headers["X-Orgx-User-Id"] = self.user_id
        return headers

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        if not self.api_key:
            raise OrgxApiError("OrgX API key is not configured (set ORGX_API_KEY).")
        url = f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                resp = client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.RequestError as exc:
            logger.warning("OrgX request %s %s failed: %s", method, path, exc)
            raise OrgxApiError(f"OrgX request failed: {exc}") from exc
        if resp.status_code >= 400:
            logger.warning("OrgX %s %s returned %s: %s", method, path, resp.status_code, resp.text[:300])
            raise OrgxApiError(
                f"OrgX {method} {path} returned {resp.status_code}",
                status_code=resp.status_code,
                body=resp.text[:2000],
            )
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise OrgxApiError(f"OrgX {method} {path} returned invalid JSON", resp.status_code) from exc

    # ── Entities ─────────────────────────────────────────

    def list_entities(self, entity_type: str, **filters: Any) -> list[dict[str, Any]]:
        params = {key: value for key, value in filters.items() if value is not None}
        params["type"] = entity_type
        data = self._request("GET", "api/entities", params=params)
        if isinstance(data, dict):
            data = data.get("data", [])
        return [item for item in data or [] if isinstance(item, dict)]

    def create_entity(self, entity_type: str, data: dict[str, Any]) -> Any:
        return self._request("POST", "api/entities", json={"type": entity_type, "data": data})

    def update_entity(self, entity_type: str, entity_id: str, updates: dict[str, Any]) -> Any:
        return self._request(
            "PATCH",
            f"api/entities/{entity_id}",
            json={"type": entity_type, "updates": updates},
        )

    def apply_changeset(self, payload: dict[str, Any]) -> Any:
        return self._request("POST", "api/changesets", json=payload)

    def emit_activity(self, payload: dict[str, Any]) -> Any:
        return self._request("POST", "api/activity", json=payload)

    # ── Snapshot ─────────────────────────────────────────

    def get_org_snapshot(self) -> OrgSnapshot:
        data = self._request("GET", "api/client/sync")
        if not isinstance(data, dict):
            raise OrgxApiError("OrgX snapshot response was not an object")
        return OrgSnapshot.from_dict(data)
