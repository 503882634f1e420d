"""Collect Solana meme tokens from the DexScreener API (free, no auth)."""
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from engine.models import TokenData
from telegram_bot import Notifier, NullNotifier, format_collector_warning

logger = logging.getLogger(__name__)

SEARCH_URL = "https://api.dexscreener.com/latest/dex/search"
BOOSTED_URL = "https://api.dexscreener.com/token-boosts/top/v1"
TOKEN_PAIRS_URL = "https://api.dexscreener.com/tokens/v1/solana"

SEARCH_QUERIES = ["meme", "dog", "cat", "pepe", "ai", "trump", "bonk", "wif", "popcat", "frog"]
PAIRS_PER_QUERY = 20
MAX_BOOSTED = 10
HTTP_TIMEOUT = 10


def _as_str(value: Any) -> str:
    if value is None or value == "":
        return "0"
    return str(value)


def _as_dict(value: Any) -> Dict:
    return value if isinstance(value, dict) else {}


def _pair_to_token(pair: Dict, fallback_address: str = "") -> Optional[TokenData]:
    """Convert a DexScreener pair to TokenData keyed by its base token."""
    base = _as_dict(pair.get("baseToken"))
    address = base.get("address") or fallback_address
    if not address:
        return None
    return TokenData(
        address=str(address),
        name=str(base.get("name") or ""),
        symbol=str(base.get("symbol") or ""),
        price_usd=_as_str(pair.get("priceUsd")),
        liquidity=_as_str(_as_dict(pair.get("liquidity")).get("usd")),
        volume_24h=_as_str(_as_dict(pair.get("volume")).get("h24")),
    )


async def _get_json(client: httpx.AsyncClient, url: str) -> Any:
    resp = await client.get(url, headers={"Accept": "application/json"})
    resp.raise_for_status()
    return resp.json()


async def _search(client: httpx.AsyncClient, query: str) -> List[TokenData]:
    data = await _get_json(client, f"{SEARCH_URL}?q={quote(query)}")
    if data is None:
        return []
    if not isinstance(data, dict):
        raise ValueError(f"unexpected search response: {type(data).__name__}")
    pairs = data.get("pairs") or []
    if not isinstance(pairs, list):
        raise ValueError(f"unexpected 'pairs' field: {type(pairs).__name__}")
    solana_pairs = [p for p in pairs if isinstance(p, dict) and p.get("chainId") == "solana"]
    logger.info("   🔎 Search \"%s\": found %d Solana pairs", query, len(solana_pairs))
    tokens = []
    for pair in solana_pairs[:PAIRS_PER_QUERY]:
        token = _pair_to_token(pair)
        if token:
            tokens.append(token)
    return tokens


async def _boosted(client: httpx.AsyncClient) -> List[TokenData]:
    data = await _get_json(client, BOOSTED_URL)
    if not isinstance(data, list):
        raise ValueError(f"unexpected boosted tokens response: {type(data).__name__}")
    solana_boosted = [
        t for t in data
        if isinstance(t, dict) and t.get("chainId") == "solana" and t.get("tokenAddress")
    ]
    logger.info("   🚀 Boosted tokens: found %d Solana tokens", len(solana_boosted))

    tokens = []
    for item in solana_boosted[:MAX_BOOSTED]:
        address = str(item["tokenAddress"])
        try:
            pairs = await _get_json(client, f"{TOKEN_PAIRS_URL}/{address}")
        except (httpx.HTTPError, ValueError) as e:
            logger.debug("Boosted token %s lookup failed: %s", address, e)
            continue
        if isinstance(pairs, list) and pairs and isinstance(pairs[0], dict):
            token = _pair_to_token(pairs[0], fallback_address=address)
            if token:
                tokens.append(token)
    return tokens


async def collect_tokens(notifier: Optional[Notifier] = None,
                         queries: Optional[List[str]] = None) -> List[TokenData]:
    """Collect Solana meme tokens, deduplicated by address (first seen wins).

    A failing search query or boosted-list request is skipped with a warning;
    the tokens from the other requests are still returned.
    """
    notifier = notifier or NullNotifier()
    all_tokens: Dict[str, TokenData] = {}

    def _add(tokens: List[TokenData]):
        for token in tokens:
            if token.address not in all_tokens:
                all_tokens[token.address] = token

    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
        for query in queries or SEARCH_QUERIES:
            try:
                _add(await _search(client, query))
            except (httpx.HTTPError, ValueError) as e:
                logger.warning("   ⚠️  Search \"%s\" failed: %s", query, e)
                await notifier.send(format_collector_warning(f'Search "{query}"', str(e)))

        try:
            _add(await _boosted(client))
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("   ⚠️  Boosted tokens fetch failed: %s", e)
            await notifier.send(format_collector_warning("Boosted tokens fetch", str(e)))

    logger.info("DexScreener: %d unique tokens", len(all_tokens))
    return list(all_tokens.values())
