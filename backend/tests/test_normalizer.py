from __future__ import annotations

import json

import pytest

from niftyai.exceptions import ParseError
from niftyai.schemas import (
    GroundingChunk,
    MarketAnalysis,
    NewsImpact,
    RecommendationType,
    Sentiment,
    SetupType,
    TradeHorizon,
    WebReference,
)
from niftyai.services.normalizer import normalize, parse_price


_FULL_PAYLOAD = {
    "marketSentiment": "BULLISH",
    "overallSummary": "Buy dips in banks; avoid IT into the close.",
    "topSectors": [{"name": "PSU Banks", "strength": 8}, {"name": "Auto", "strength": 7}],
    "weakSectors": [{"name": "IT", "strength": 3}],
    "stocks": [
        {
            "symbol": "SBIN",
            "companyName": "State Bank of India",
            "currentPrice": "₹812.40",
            "entryRange": "808 - 812",
            "targetPrice": "835.00",
            "stopLoss": "799.00",
            "tradeHorizon": "BTST",
            "setupType": "BREAKOUT",
            "sector": "PSU Banks",
            "sectorSentiment": "BULLISH",
            "volumeAnalysis": "2.3x Avg Volume",
            "newsSummary": "Loan growth guidance raised.",
            "newsImpact": "HIGH",
            "recommendation": "BUY",
            "reasoning": "Flag breakout above 810 with delivery spike.",
        },
        {
            "symbol": "INFY",
            "companyName": "Infosys",
            "currentPrice": "1,512.00",
            "entryRange": "1510 - 1518",
            "targetPrice": "1,480.00",
            "stopLoss": "1,530.00",
            "tradeHorizon": "INTRADAY",
            "setupType": "RESISTANCE_REJECTION",
            "sector": "IT",
            "sectorSentiment": "BEARISH",
            "volumeAnalysis": "Distribution at highs",
            "newsSummary": "Peer guidance cut.",
            "newsImpact": "MEDIUM",
            "recommendation": "SELL",
            "reasoning": "Rejected at 1520 supply zone.",
        },
    ],
}


def _fenced(payload: dict) -> str:
    return f"Here is today's scan.\n```json\n{json.dumps(payload, ensure_ascii=False)}\n```\nTrade safe."


def test_text_without_object_is_no_structured_data():
    with pytest.raises(ParseError) as excinfo:
        normalize("I could not find any setups today.")
    assert excinfo.value.reason == ParseError.NO_STRUCTURED_DATA
    assert str(excinfo.value) == "No structured data found in analysis."


def test_malformed_object_is_parse_failure():
    with pytest.raises(ParseError) as excinfo:
        normalize('```json\n{"marketSentiment": "BULLISH", "stocks": [}\n```')
    assert excinfo.value.reason == ParseError.MALFORMED
    assert str(excinfo.value) == "Failed to parse market data structure."


def test_malformed_and_missing_are_distinguishable():
    reasons = set()
    for text in ("no json here", "{not: valid}"):
        with pytest.raises(ParseError) as excinfo:
            normalize(text)
        reasons.add(excinfo.value.reason)
    assert reasons == {ParseError.NO_STRUCTURED_DATA, ParseError.MALFORMED}


def test_empty_object_gets_every_default():
    analysis = normalize("{}")
    assert analysis.market_sentiment == Sentiment.NEUTRAL
    assert analysis.overall_summary == "Analysis complete."
    assert analysis.top_sectors == []
    assert analysis.weak_sectors == []
    assert analysis.stocks == []
    assert analysis.source_urls == []


def test_fenced_payload_is_extracted():
    analysis = normalize(_fenced(_FULL_PAYLOAD))
    assert analysis.market_sentiment == Sentiment.BULLISH
    assert [stock.symbol for stock in analysis.stocks] == ["SBIN", "INFY"]
    assert analysis.stocks[0].trade_horizon == TradeHorizon.BTST
    assert analysis.stocks[1].setup_type == SetupType.RESISTANCE_REJECTION
    assert analysis.stocks[0].news_impact == NewsImpact.HIGH


def test_stock_defaults_and_missing_recommendation():
    analysis = normalize(json.dumps({"stocks": [{"symbol": "TCS", "currentPrice": "3900"}]}))
    stock = analysis.stocks[0]
    assert stock.target_price == "TBD"
    assert stock.stop_loss == "TBD"
    assert stock.entry_range == "At Market"
    assert stock.trade_horizon == TradeHorizon.INTRADAY
    assert stock.setup_type == SetupType.MOMENTUM
    assert stock.news_impact == NewsImpact.LOW
    assert stock.recommendation is None
    assert stock.company_name is None
    assert stock.reasoning is None


def test_unknown_enum_values_fall_back():
    payload = {
        "marketSentiment": "euphoric",
        "stocks": [{"symbol": "ITC", "tradeHorizon": "scalp", "recommendation": "STRONG BUY", "newsImpact": "huge"}],
    }
    analysis = normalize(json.dumps(payload))
    assert analysis.market_sentiment == Sentiment.NEUTRAL
    assert analysis.stocks[0].trade_horizon == TradeHorizon.INTRADAY
    assert analysis.stocks[0].news_impact == NewsImpact.LOW
    assert analysis.stocks[0].recommendation is None


def test_enum_values_are_case_insensitive():
    payload = {"marketSentiment": "bearish", "stocks": [{"setupType": "support bounce", "recommendation": "sell"}]}
    analysis = normalize(json.dumps(payload))
    assert analysis.market_sentiment == Sentiment.BEARISH
    assert analysis.stocks[0].setup_type == SetupType.SUPPORT_BOUNCE
    assert analysis.stocks[0].recommendation == RecommendationType.SELL


def test_sector_strength_defaults_and_bounds():
    payload = {
        "topSectors": [
            {"name": "Metals", "strength": "strong"},
            {"name": "Pharma", "strength": 14},
            {"name": "Realty", "strength": 6.6},
            "Energy",
        ],
        "weakSectors": [{"name": "FMCG", "strength": True}, 42],
    }
    analysis = normalize(json.dumps(payload))
    assert [(s.name, s.strength) for s in analysis.top_sectors] == [
        ("Metals", 5),
        ("Pharma", 10),
        ("Realty", 7),
        ("Energy", 5),
    ]
    assert [(s.name, s.strength) for s in analysis.weak_sectors] == [("FMCG", 5)]


def test_non_list_collections_become_empty():
    analysis = normalize(json.dumps({"topSectors": None, "weakSectors": "none", "stocks": {"symbol": "X"}}))
    assert analysis.top_sectors == []
    assert analysis.weak_sectors == []
    assert analysis.stocks == []


def test_extra_fields_are_ignored():
    analysis = normalize(json.dumps({"marketSentiment": "NEUTRAL", "vix": 14.2, "stocks": [{"symbol": "LT", "beta": 1.1}]}))
    assert analysis.stocks[0].symbol == "LT"
    assert "beta" not in analysis.stocks[0].model_dump()


def test_citations_keep_only_web_references():
    citations = [
        GroundingChunk(web=WebReference(uri="https://www.nseindia.com/market", title="NSE")),
        GroundingChunk(web=None),
        GroundingChunk(web=WebReference()),
    ]
    analysis = normalize("{}", citations)
    assert [(link.title, link.uri) for link in analysis.source_urls] == [
        ("NSE", "https://www.nseindia.com/market"),
        ("Source", "#"),
    ]


def test_normalizing_dumped_record_is_idempotent():
    citations = [GroundingChunk(web=WebReference(uri="https://example.com/a", title="A"))]
    first = normalize(_fenced(_FULL_PAYLOAD), citations)

    dumped = json.dumps(first.model_dump(by_alias=True, mode="json"))
    second = normalize(dumped, citations)

    assert second == first
    assert isinstance(second, MarketAnalysis)


def test_analysis_is_immutable():
    analysis = normalize("{}")
    with pytest.raises(Exception):
        analysis.overall_summary = "changed"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("₹1,240.50", 1240.5),
        ("1260.00", 1260.0),
        ("INR 2,315", 2315.0),
        ("TBD", 0.0),
        ("At Market", 0.0),
        ("", 0.0),
        (None, 0.0),
        ("812.4.1", 812.4),
    ],
)
def test_parse_price_is_tolerant(raw, expected):
    assert parse_price(raw) == pytest.approx(expected)
