from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class MarketIndex(str, Enum):
    NIFTY_50 = "NIFTY 50"
    BANK_NIFTY = "BANK NIFTY"
    NIFTY_500 = "NIFTY 500"

    @classmethod
    def parse(cls, raw: Any) -> "MarketIndex":
        if isinstance(raw, cls):
            return raw
        text = str(raw or "").strip()
        for member in cls:
            if text.upper() in {member.value, member.name}:
                return member
        raise ValueError(f"Unknown market index: {raw!r}")


class Sentiment(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class RecommendationType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"
    AVOID = "AVOID"


class TradeHorizon(str, Enum):
    INTRADAY = "INTRADAY"
    BTST = "BTST"
    SWING = "SWING"
    POSITIONAL = "POSITIONAL"


class SetupType(str, Enum):
    BREAKOUT = "BREAKOUT"
    REVERSAL = "REVERSAL"
    MOMENTUM = "MOMENTUM"
    SUPPORT_BOUNCE = "SUPPORT_BOUNCE"
    RESISTANCE_REJECTION = "RESISTANCE_REJECTION"


class NewsImpact(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class AlertKind(str, Enum):
    TARGET = "TARGET"
    STOP_LOSS = "STOP_LOSS"


class ToastKind(str, Enum):
    SUCCESS = "success"
    DANGER = "danger"


class PriceDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    FLAT = "flat"


class AlertSwitchState(str, Enum):
    DISARMED = "DISARMED"
    ARMED = "ARMED"


class _AnalysisModel(BaseModel):
    # camelCase on the wire so a dumped record matches the AI payload shape.
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class SectorPerformance(_AnalysisModel):
    name: Optional[str] = None
    strength: int = 5


class SourceLink(_AnalysisModel):
    title: str = "Source"
    uri: str = "#"


class StockRecommendation(_AnalysisModel):
    symbol: Optional[str] = None
    company_name: Optional[str] = None
    current_price: Optional[str] = None
    entry_range: str = "At Market"
    target_price: str = "TBD"
    stop_loss: str = "TBD"
    trade_horizon: TradeHorizon = TradeHorizon.INTRADAY
    setup_type: SetupType = SetupType.MOMENTUM
    sector: Optional[str] = None
    sector_sentiment: Optional[str] = None
    volume_analysis: Optional[str] = None
    news_summary: Optional[str] = None
    news_impact: NewsImpact = NewsImpact.LOW
    recommendation: Optional[RecommendationType] = None
    reasoning: Optional[str] = None


class MarketAnalysis(_AnalysisModel):
    market_sentiment: Sentiment = Sentiment.NEUTRAL
    overall_summary: str = "Analysis complete."
    top_sectors: List[SectorPerformance] = Field(default_factory=list)
    weak_sectors: List[SectorPerformance] = Field(default_factory=list)
    stocks: List[StockRecommendation] = Field(default_factory=list)
    source_urls: List[SourceLink] = Field(default_factory=list)


class WebReference(BaseModel):
    uri: Optional[str] = None
    title: Optional[str] = None


class GroundingChunk(BaseModel):
    web: Optional[WebReference] = None


class Completion(BaseModel):
    text: str = ""
    citations: List[GroundingChunk] = Field(default_factory=list)
    model: str = ""


class AlertEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: Optional[str] = None
    kind: AlertKind
    price: float


class Toast(BaseModel):
    id: int
    message: str
    kind: ToastKind
    created_at: str


class TickerState(BaseModel):
    card_id: int
    symbol: Optional[str] = None
    recommendation: Optional[RecommendationType] = None
    live_price: float
    target_price: float
    stop_loss: float
    target_armed: bool = False
    stop_armed: bool = False
    direction: PriceDirection = PriceDirection.FLAT
    tick: int = 0
    simulated: bool = True
    feed_label: str = "Simulated Feed"


class ScanRequest(BaseModel):
    index: MarketIndex = MarketIndex.NIFTY_50

    @field_validator("index", mode="before")
    @classmethod
    def _accept_member_names(cls, value: Any) -> MarketIndex:
        return MarketIndex.parse(value)


class ScanResponse(BaseModel):
    index: MarketIndex
    analysis: Optional[MarketAnalysis] = None
    raw_text: str = ""
    error: Optional[str] = None


class SessionView(BaseModel):
    selected_index: MarketIndex
    loading: bool
    analysis: Optional[MarketAnalysis] = None
    error: Optional[str] = None
    scanned_at: Optional[str] = None
    tickers: List[TickerState] = Field(default_factory=list)


class AlertToggleRequest(BaseModel):
    armed: Optional[bool] = None
