from __future__ import annotations

import json
import logging
import math
import re
from enum import Enum
from typing import Any, Dict, Iterable, List, Type, TypeVar

from niftyai.exceptions import ParseError
from niftyai.schemas import (
    GroundingChunk,
    MarketAnalysis,
    NewsImpact,
    RecommendationType,
    SectorPerformance,
    Sentiment,
    SetupType,
    SourceLink,
    StockRecommendation,
    TradeHorizon,
)

logger = logging.getLogger(__name__)

_CODE_FENCE_PATTERN = re.compile(r"```(?:json)?\n?", re.IGNORECASE)
_PRICE_NOISE_PATTERN = re.compile(r"[^0-9.]")
_LEADING_NUMERAL_PATTERN = re.compile(r"\d+(?:\.\d*)?|\.\d+")

_DEFAULT_STRENGTH = 5

E = TypeVar("E", bound=Enum)


def parse_price(raw: Any) -> float:
    """Pull a plain number out of a display price such as ``"₹1,240.50"``.

    Thousands separators and every non-digit, non-dot character are dropped and
    the leading decimal numeral is read. Anything without a numeral is ``0.0``.
    """
    if raw is None:
        return 0.0
    if isinstance(raw, bool):
        return 0.0
    if isinstance(raw, (int, float)):
        return float(raw) if math.isfinite(raw) else 0.0
    cleaned = _PRICE_NOISE_PATTERN.sub("", str(raw).replace(",", ""))
    match = _LEADING_NUMERAL_PATTERN.match(cleaned)
    if not match:
        return 0.0
    try:
        return float(match.group(0))
    except ValueError:
        return 0.0


def _strip_code_fences(text: str) -> str:
    return _CODE_FENCE_PATTERN.sub("", text).strip()


def _extract_payload(raw_text: str) -> Dict[str, Any]:
    text = raw_text or ""
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        raise ParseError("No structured data found in analysis.", reason=ParseError.NO_STRUCTURED_DATA)

    candidate = _strip_code_fences(text[start : end + 1])
    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as exc:
        logger.warning("Analysis JSON did not decode: %s", exc)
        raise ParseError("Failed to parse market data structure.", reason=ParseError.MALFORMED) from exc

    if not isinstance(payload, dict):
        raise ParseError("Failed to parse market data structure.", reason=ParseError.MALFORMED)
    return payload


def _coerce_enum(enum_cls: Type[E], raw: Any, default: E | None) -> E | None:
    if isinstance(raw, enum_cls):
        return raw
    if not isinstance(raw, str):
        return default
    key = raw.strip().upper().replace(" ", "_").replace("-", "_")
    for member in enum_cls:
        if key == member.name or key == str(member.value).upper():
            return member
    return default


def _optional_text(raw: Any) -> str | None:
    if raw is None:
        return None
    if isinstance(raw, str):
        return raw
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return str(raw)
    return None


def _text_or_default(raw: Any, default: str) -> str:
    text = _optional_text(raw)
    return text if text else default


def _as_list(raw: Any) -> List[Any]:
    return raw if isinstance(raw, list) else []


def _sector_strength(raw: Any) -> int:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return _DEFAULT_STRENGTH
    if not math.isfinite(raw):
        return _DEFAULT_STRENGTH
    return int(max(1, min(10, round(raw))))


def _sector(raw: Any) -> SectorPerformance | None:
    if isinstance(raw, str):
        return SectorPerformance(name=raw, strength=_DEFAULT_STRENGTH)
    if not isinstance(raw, dict):
        return None
    return SectorPerformance(
        name=_optional_text(raw.get("name")),
        strength=_sector_strength(raw.get("strength")),
    )


def _sectors(raw: Any) -> List[SectorPerformance]:
    return [sector for sector in (_sector(item) for item in _as_list(raw)) if sector is not None]


def _stock(raw: Dict[str, Any]) -> StockRecommendation:
    recommendation = _coerce_enum(RecommendationType, raw.get("recommendation"), None)
    if recommendation is None and raw.get("recommendation") is not None:
        logger.info("Unrecognised recommendation %r for %s", raw.get("recommendation"), raw.get("symbol"))

    return StockRecommendation(
        symbol=_optional_text(raw.get("symbol")),
        company_name=_optional_text(raw.get("companyName")),
        current_price=_optional_text(raw.get("currentPrice")),
        entry_range=_text_or_default(raw.get("entryRange"), "At Market"),
        target_price=_text_or_default(raw.get("targetPrice"), "TBD"),
        stop_loss=_text_or_default(raw.get("stopLoss"), "TBD"),
        trade_horizon=_coerce_enum(TradeHorizon, raw.get("tradeHorizon"), TradeHorizon.INTRADAY),
        setup_type=_coerce_enum(SetupType, raw.get("setupType"), SetupType.MOMENTUM),
        sector=_optional_text(raw.get("sector")),
        sector_sentiment=_optional_text(raw.get("sectorSentiment")),
        volume_analysis=_optional_text(raw.get("volumeAnalysis")),
        news_summary=_optional_text(raw.get("newsSummary")),
        news_impact=_coerce_enum(NewsImpact, raw.get("newsImpact"), NewsImpact.LOW),
        recommendation=recommendation,
        reasoning=_optional_text(raw.get("reasoning")),
    )


def collect_sources(citations: Iterable[GroundingChunk]) -> List[SourceLink]:
    out: List[SourceLink] = []
    for chunk in citations or ():
        web = chunk.web
        if web is None:
            continue
        out.append(SourceLink(title=web.title or "Source", uri=web.uri or "#"))
    return out


def normalize(raw_text: str, citations: Iterable[GroundingChunk] = ()) -> MarketAnalysis:
    payload = _extract_payload(raw_text)

    stocks = [_stock(item) for item in _as_list(payload.get("stocks")) if isinstance(item, dict)]
    return MarketAnalysis(
        market_sentiment=_coerce_enum(Sentiment, payload.get("marketSentiment"), Sentiment.NEUTRAL),
        overall_summary=_text_or_default(payload.get("overallSummary"), "Analysis complete."),
        top_sectors=_sectors(payload.get("topSectors")),
        weak_sectors=_sectors(payload.get("weakSectors")),
        stocks=stocks,
        source_urls=collect_sources(citations),
    )
