"""
Paginated enumeration of every object name in a container.

Swift caps a single listing response (10,000 names by default), so a full
listing is assembled page by page, using the last name received as the
marker for the next request.
refs: https://docs.openstack.org/swift/latest/api/large_lists.html
"""

import logging
from typing import List, Optional, Protocol, Tuple

from coldcopy.exceptions import ListStalledError

logger: logging.Logger = logging.getLogger(__name__)


class ObjectPageSource(Protocol):
    async def list_object_page(
        self, credential: object, container: str, marker: Optional[str] = None
    ) -> Tuple[List[str], int]: ...


async def list_all_objects(
    client: ObjectPageSource,
    credential: object,
    container: str,
    max_pages: int = 10_000,
) -> Tuple[List[str], int]:
    """
    Materializes the full list of object names in a container.

    The first response's declared object count is taken as the target; it is
    a snapshot and may be stale if the container changes during the listing.
    Pages are requested until at least that many names have accumulated.

    Args:
        client (ObjectPageSource): Source client exposing `list_object_page`.
        credential (object): The source credential passed through to the client.
        container (str): The container to enumerate.
        max_pages (int): Upper bound on page requests before giving up.

    Returns:
        Tuple[List[str], int]: All object names, in listing order, and the
            declared total.

    Raises:
        ListStalledError: If a page comes back empty while the listing is
            still short of the declared total, or `max_pages` is exhausted.
    """
    names, total = await client.list_object_page(credential, container)
    pages: int = 1

    while len(names) < total:
        if pages >= max_pages:
            raise ListStalledError(container, len(names), total)
        marker: Optional[str] = names[-1] if names else None
        page, _ = await client.list_object_page(credential, container, marker=marker)
        pages += 1
        if not page:
            raise ListStalledError(container, len(names), total)
        names.extend(page)
        logger.debug(
            f"Listed {len(names)}/{total} objects in '{container}' ({pages} pages)."
        )

    return names, total
