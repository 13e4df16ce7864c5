"""Fetching published score tree dumps from IPFS gateways."""

import os
from collections.abc import Iterable
from typing import Any

import requests

from credit_vaults.cache import cache_key, get_cached, set_cached
from credit_vaults.constants import DEFAULT_IPFS_GATEWAYS, IPFS_GATEWAYS_ENV


def resolve_gateways(override: str | None = None) -> list[str]:
    """Gateways from a comma-separated override, then the environment, then the defaults."""
    raw = override or os.getenv(IPFS_GATEWAYS_ENV)
    if raw:
        gateways = [g.strip() for g in raw.split(",") if g.strip()]
        if gateways:
            return gateways
    return list(DEFAULT_IPFS_GATEWAYS)


def build_gateway_url(gateway: str, cid: str) -> str:
    """Build IPFS gateway URL from base gateway and CID."""
    gw = gateway.rstrip("/")
    # Accepts https://ipfs.io, https://ipfs.io/ipfs and https://ipfs.io/ipfs/
    if gw.endswith("/ipfs"):
        return f"{gw}/{cid}"
    return f"{gw}/ipfs/{cid}"


def fetch_score_tree(
    cid: str,
    gateways: Iterable[str],
    *,
    timeout_s: int,
    use_cache: bool = True,
    session: requests.Session | None = None,
) -> dict[str, Any]:
    """Fetch and decode a score tree dump by CID, trying each gateway in turn."""
    key = cache_key("score-tree", cid)
    if use_cache:
        cached = get_cached(key)
        if isinstance(cached, dict):
            return cached

    if session is not None:
        data = _fetch_from_gateways(session, cid, gateways, timeout_s)
    else:
        with requests.Session() as http:
            data = _fetch_from_gateways(http, cid, gateways, timeout_s)
    if use_cache:
        set_cached(key, data)
    return data


def _fetch_from_gateways(
    http: requests.Session, cid: str, gateways: Iterable[str], timeout_s: int
) -> dict[str, Any]:
    last_err: Exception | None = None
    for gw in gateways:
        url = build_gateway_url(gw, cid)
        try:
            resp = http.get(url, timeout=timeout_s)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as ex:
            last_err = ex
            continue
        if not isinstance(data, dict):
            last_err = ValueError(f"{url} did not return a JSON object")
            continue
        return data
    raise RuntimeError(f"Failed to fetch CID {cid} from all configured gateways") from last_err
