"""Live organization / folder / project lookup (Cloud Resource Manager REST).

Used only when the hierarchy cache has no document for an ancestor.
Endpoints:
- organizations: GET v1/organizations/{id}  -> displayName
- folders:       GET v2/folders/{id}        -> displayName
- projects:      GET v1/projects/{id}       -> name

Access tokens come from the metadata server and are cached until shortly
before they expire.
"""

import time

import httpx

from asset_compliance_engine.observability import get_logger

logger = get_logger(__name__)

# ancestor type -> (API version, response field holding the display name)
_ENDPOINTS: dict[str, tuple[str, str]] = {
    "organizations": ("v1", "displayName"),
    "folders": ("v2", "displayName"),
    "projects": ("v1", "name"),
}

# Refresh tokens this many seconds before their announced expiry
_TOKEN_EXPIRY_MARGIN_S = 60


class ResourceManagerError(Exception):
    """Raised when a live lookup fails."""


class ResourceManagerClient:
    """Fetch ancestor display names from the resource-manager REST API.

    Args:
        base_url: API base URL.
        token_url: Metadata server token endpoint.
        timeout_s: Per request timeout in seconds.
        transport: Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        base_url: str = "https://cloudresourcemanager.googleapis.com",
        token_url: str = "http://metadata.google.internal/computeMetadata/v1/instance/service-accounts/default/token",
        timeout_s: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token_url = token_url
        self._http = httpx.AsyncClient(timeout=timeout_s, transport=transport)
        self._token: str | None = None
        self._token_expires_at = 0.0

    async def _access_token(self) -> str:
        if self._token is not None and time.monotonic() < self._token_expires_at:
            return self._token
        response = await self._http.get(self._token_url, headers={"Metadata-Flavor": "Google"})
        if response.status_code != 200:
            raise ResourceManagerError(f"Metadata server returned status {response.status_code}")
        body = response.json()
        self._token = body["access_token"]
        self._token_expires_at = time.monotonic() + float(body.get("expires_in", 0)) - _TOKEN_EXPIRY_MARGIN_S
        return self._token

    async def get_display_name(self, ancestor_type: str, ancestor_id: str) -> str:
        """Fetch one ancestor's display name.

        Args:
            ancestor_type: organizations, folders or projects.
            ancestor_id: Identifier after the type prefix.

        Returns:
            The display name.

        Raises:
            ResourceManagerError: On unknown types, HTTP errors or unexpected payloads.
        """
        endpoint = _ENDPOINTS.get(ancestor_type)
        if endpoint is None:
            raise ResourceManagerError(f"No live lookup for ancestor type {ancestor_type}")
        version, field_name = endpoint

        try:
            token = await self._access_token()
            response = await self._http.get(
                f"{self._base_url}/{version}/{ancestor_type}/{ancestor_id}",
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            raise ResourceManagerError(f"{ancestor_type}.get request error: {exc}") from exc

        if response.status_code != 200:
            raise ResourceManagerError(
                f"{ancestor_type}.get returned status {response.status_code}: {response.text[:200]}"
            )
        value = response.json().get(field_name)
        if not isinstance(value, str):
            raise ResourceManagerError(f"{ancestor_type}.get response has no {field_name}")
        logger.debug("Live ancestor lookup", ancestor_type=ancestor_type, ancestor_id=ancestor_id)
        return value

    async def close(self) -> None:
        await self._http.aclose()
