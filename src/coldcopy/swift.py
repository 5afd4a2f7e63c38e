"""
Client for the Swift-compatible source object store.

Authentication goes through a Keystone v2 token request; listings and object
reads use the plain-text Swift account/container API with the token passed
in the `X-Auth-Token` header.
"""

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple
from urllib.parse import quote

import aiohttp

from coldcopy.config import SwiftConfig
from coldcopy.exceptions import SourceAuthError, SourceFetchError, SourceListingError

logger: logging.Logger = logging.getLogger(__name__)

OBJECT_COUNT_HEADER: str = "X-Container-Object-Count"


@dataclass(frozen=True)
class SwiftCredential:
    """
    An authenticated handle on a Swift account.

    Attributes:
        token (str): The Keystone token id.
        storage_url (str): The account URL requests are made against.
    """

    token: str
    storage_url: str

    @property
    def headers(self) -> Dict[str, str]:
        return {"X-Auth-Token": self.token}

    def container_url(self, container: str) -> str:
        return f"{self.storage_url}/{quote(container, safe='')}"

    def object_url(self, container: str, name: str) -> str:
        return f"{self.container_url(container)}/{quote(name, safe='/')}"


def _split_lines(body: str) -> List[str]:
    """Splits a newline-terminated plain-text listing into names."""
    return [line for line in body.split("\n") if line]


class SwiftClient:
    """
    Thin asynchronous wrapper around the Swift HTTP API.

    The client is safe for concurrent use: it only holds the shared
    `aiohttp.ClientSession` and immutable configuration.
    """

    def __init__(self, session: aiohttp.ClientSession, config: SwiftConfig) -> None:
        """
        Args:
            session (aiohttp.ClientSession): The HTTP session to issue requests on.
            config (SwiftConfig): Source connection settings.
        """
        self._session: aiohttp.ClientSession = session
        self._config: SwiftConfig = config

    async def authenticate(self) -> SwiftCredential:
        """
        Requests a Keystone v2 token with password credentials.

        Returns:
            SwiftCredential: The token and account URL for subsequent requests.

        Raises:
            SourceAuthError: If the identity service cannot be reached or
                rejects the credentials.
        """
        payload: Dict[str, Any] = {
            "auth": {
                "passwordCredentials": {
                    "username": self._config.username,
                    "password": self._config.password,
                },
                "tenantId": self._config.tenant_id,
            }
        }
        try:
            async with self._session.post(
                self._config.identity_url, json=payload
            ) as response:
                if response.status >= 300:
                    raise SourceAuthError(
                        f"Identity service returned HTTP {response.status}."
                    )
                body: Dict[str, Any] = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise SourceAuthError(f"Failed to reach identity service: {e}") from e

        try:
            token: str = body["access"]["token"]["id"]
        except (KeyError, TypeError) as e:
            raise SourceAuthError("Identity response did not contain a token.") from e

        logger.debug(f"Obtained source token for tenant {self._config.tenant_id}")
        return SwiftCredential(token=token, storage_url=self._config.account_url)

    async def list_containers(self, credential: SwiftCredential) -> List[str]:
        """
        Lists every container of the account.

        Args:
            credential (SwiftCredential): The authenticated handle.

        Returns:
            List[str]: Container names in the order returned by the store.
        """
        try:
            async with self._session.get(
                credential.storage_url, headers=credential.headers
            ) as response:
                if response.status == 204:
                    return []
                if response.status >= 300:
                    raise SourceListingError(
                        f"Listing containers failed with HTTP {response.status}."
                    )
                body: str = await response.text()
        except aiohttp.ClientError as e:
            raise SourceListingError(f"Failed to list containers: {e}") from e
        return _split_lines(body)

    async def list_object_page(
        self,
        credential: SwiftCredential,
        container: str,
        marker: Optional[str] = None,
    ) -> Tuple[List[str], int]:
        """
        Fetches one page of object names.

        Args:
            credential (SwiftCredential): The authenticated handle.
            container (str): The container to list.
            marker (str, optional): Only names strictly greater than this are returned.

        Returns:
            Tuple[List[str], int]: The page of names and the container's
                declared total object count.
        """
        params: Dict[str, str] = {}
        if marker is not None:
            params["marker"] = marker
        try:
            async with self._session.get(
                credential.container_url(container),
                headers=credential.headers,
                params=params,
            ) as response:
                if response.status >= 300:
                    raise SourceListingError(
                        f"Listing container '{container}' failed with "
                        f"HTTP {response.status}."
                    )
                raw_total: Optional[str] = response.headers.get(OBJECT_COUNT_HEADER)
                body: str = await response.text() if response.status != 204 else ""
        except aiohttp.ClientError as e:
            raise SourceListingError(
                f"Failed to list container '{container}': {e}"
            ) from e

        try:
            total: int = int(raw_total) if raw_total is not None else -1
        except ValueError:
            total = -1
        if total < 0:
            raise SourceListingError(
                f"Container '{container}' listing has no valid "
                f"{OBJECT_COUNT_HEADER} header (got {raw_total!r})."
            )
        return _split_lines(body), total

    async def iter_object(
        self,
        credential: SwiftCredential,
        container: str,
        name: str,
        chunk_size: int = 64 * 1024,
    ) -> AsyncIterator[bytes]:
        """
        Streams an object body in chunks.

        Args:
            credential (SwiftCredential): The authenticated handle.
            container (str): The owning container.
            name (str): The object name.
            chunk_size (int): Maximum size of each yielded chunk.

        Yields:
            bytes: Consecutive pieces of the object body.

        Raises:
            SourceFetchError: On a non-2xx response or transport failure.
        """
        try:
            async with self._session.get(
                credential.object_url(container, name), headers=credential.headers
            ) as response:
                if response.status >= 300:
                    raise SourceFetchError(
                        f"GET '{container}/{name}' returned HTTP {response.status}."
                    )
                async for chunk in response.content.iter_chunked(chunk_size):
                    yield chunk
        except aiohttp.ClientError as e:
            raise SourceFetchError(f"GET '{container}/{name}' failed: {e}") from e
