"""Inventory anchor lookup against the object mapper."""

import logging
from typing import List

import httpx

from fwupdater.errors import InventoryLookupFailed


class InventoryClient:
    """Resolves inventory object paths implementing a given interface."""

    def __init__(
        self,
        mapper_url: str = "http://localhost:9080",
        inventory_path: str = "/xyz/openbmc_project/inventory",
        timeout: float = 5.0,
    ):
        """Initialize inventory client.

        Args:
            mapper_url: Base URL of the object mapper (default: http://localhost:9080)
            inventory_path: Subtree to search
            timeout: Request timeout in seconds
        """
        self.logger = logging.getLogger("fwupdater.inventory")
        self.mapper_url = mapper_url
        self.subtree_endpoint = f"{mapper_url}/api/v1.0/mapper/subtree-paths"
        self.inventory_path = inventory_path
        self.timeout = timeout

    async def get_subtree_paths(self, interface: str) -> List[str]:
        """Return inventory object paths that implement ``interface``.

        Raises:
            InventoryLookupFailed: If the mapper cannot be queried or the
                answer is not a list of paths
        """
        params = {"path": self.inventory_path, "depth": 0, "interfaces": interface}
        self.logger.debug(f"Mapper lookup: interface={interface}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.subtree_endpoint, params=params)
                response.raise_for_status()
                paths = response.json()
        except httpx.HTTPError as e:
            raise InventoryLookupFailed(f"mapper lookup for {interface} failed: {e}") from e
        except ValueError as e:
            raise InventoryLookupFailed(f"mapper returned invalid JSON for {interface}: {e}") from e

        if not isinstance(paths, list) or not all(isinstance(p, str) for p in paths):
            raise InventoryLookupFailed(f"mapper returned unexpected payload for {interface}: {paths!r}")
        return paths
