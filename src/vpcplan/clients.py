from __future__ import annotations

from functools import lru_cache
from typing import Any

from google.cloud import compute_v1
from google.cloud import storage  # type: ignore # noqa: I001

# Shared Client Registry (Lazy-loaded and cached)


@lru_cache(maxsize=1)
def get_networks_client() -> Any:
    return compute_v1.NetworksClient()


@lru_cache(maxsize=1)
def get_subnetworks_client() -> Any:
    return compute_v1.SubnetworksClient()


@lru_cache(maxsize=1)
def get_firewalls_client() -> Any:
    return compute_v1.FirewallsClient()


@lru_cache(maxsize=1)
def get_routes_client() -> Any:
    return compute_v1.RoutesClient()


@lru_cache(maxsize=1)
def get_storage_client() -> Any:
    return storage.Client()
