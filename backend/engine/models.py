"""Data types shared by the collector, discovery, decision and persistence steps."""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenData:
    # Prices and amounts stay strings to avoid float rounding of upstream values
    address: str
    name: str
    symbol: str
    price_usd: str = "0"
    liquidity: str = "0"
    volume_24h: str = "0"


@dataclass(frozen=True)
class DiscoveredNarrative:
    name: str
    description: str
    token_name: str
    symbol: str
    confidence: int
    matching_tokens: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class HistoryEntry:
    narrative: str
    token_name: str
    symbol: str
    mint_address: str
    tx_signature: str
    matching_tokens: List[str]
    confidence: int
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "narrative": self.narrative,
            "tokenName": self.token_name,
            "symbol": self.symbol,
            "mintAddress": self.mint_address,
            "txSignature": self.tx_signature,
            "matchingTokens": list(self.matching_tokens),
            "confidence": self.confidence,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "HistoryEntry":
        return cls(
            narrative=str(raw.get("narrative", "")),
            token_name=str(raw.get("tokenName", "")),
            symbol=str(raw.get("symbol", "")),
            mint_address=str(raw.get("mintAddress", "")),
            tx_signature=str(raw.get("txSignature", "")),
            matching_tokens=[str(t) for t in raw.get("matchingTokens") or []],
            confidence=raw.get("confidence", 0),
            created_at=str(raw.get("createdAt", "")),
        )

    @classmethod
    def from_mint(cls, narrative: DiscoveredNarrative, mint_address: str,
                  tx_signature: str, created_at: str) -> "HistoryEntry":
        return cls(
            narrative=narrative.name,
            token_name=narrative.token_name,
            symbol=narrative.symbol,
            mint_address=mint_address,
            tx_signature=tx_signature,
            matching_tokens=list(narrative.matching_tokens),
            confidence=narrative.confidence,
            created_at=created_at,
        )


@dataclass
class HistoryData:
    """Append-only record of every successful mint, in insertion order."""

    entries: List[HistoryEntry] = field(default_factory=list)

    def append(self, entry: HistoryEntry):
        self.entries.append(entry)

    def to_dict(self) -> Dict[str, Any]:
        return {"entries": [e.to_dict() for e in self.entries]}

    @classmethod
    def from_dict(cls, raw: Any) -> "HistoryData":
        if not isinstance(raw, dict):
            raise ValueError(f"history must be a JSON object, got {type(raw).__name__}")
        entries = raw.get("entries") or []
        if not isinstance(entries, list):
            raise ValueError("history 'entries' must be a list")
        valid = [HistoryEntry.from_dict(e) for e in entries if isinstance(e, dict)]
        if len(valid) < len(entries):
            logger.warning("⚠️  Discarding %d malformed history entries; they will not be saved back",
                           len(entries) - len(valid))
        return cls(entries=valid)
