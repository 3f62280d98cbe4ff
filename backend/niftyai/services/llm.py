from __future__ import annotations

import logging
from typing import Any, Dict, List, Protocol

import httpx

from niftyai.config import Settings
from niftyai.exceptions import TransportError
from niftyai.schemas import Completion, GroundingChunk, MarketIndex, WebReference

logger = logging.getLogger(__name__)

SCAN_SYSTEM_INSTRUCTION = (
    "You are a forward-looking market strategist. You focus on future potential, not past performance. "
    "You give precise levels."
)

_SCAN_PROMPT_TEMPLATE = """
Act as an elite Live Trader and Technical Analyst for the Indian Stock Market (NSE).
I need actionable **Buy Today Sell Tomorrow (BTST)**, **Intraday**, or **Swing Trading** suggestions for **{index}**.

**Goal:** Do NOT just list stocks that have already gained 5% today. Find stocks that are **setting up** for a move NOW or TOMORROW.

**Strategy to follow:**
1.  **Search Phase (Live Data)**:
    *   Find stocks with **unusual volume spikes** happening right now.
    *   Identify sectors experiencing **live rotation** (money flowing in/out today).
    *   Look for "High Delivery Percentage" stocks (indicates positioning for tomorrow).
    *   Find stocks near key **Breakout levels** or **Support zones**.
    *   **News Analysis**: Prioritize news from the LAST 2 HOURS. Differentiate between "General Company Updates" (Low Impact) and "Price Sensitive News" (High Impact) like earnings, orders, or regulatory changes.

2.  **Analysis Phase (Predictive)**:
    *   **For BUY:** Look for "Bullish Flag patterns", "Support Bounces", or "Volume Breakouts" happening now.
    *   **For SELL:** Look for "Resistance Rejection", "Head and Shoulders breakdowns", or "Weak structures".
    *   Determine strictly: Entry Range, Target, and Stop Loss.
    *   Classify the trade: Is it for today (INTRADAY) or for tomorrow (BTST)?
    *   **Sector Strength**: Rate strong and weak sectors on a scale of 1-10 based on momentum.

3.  **Output**:
    *   Select the top 4-6 best **forward-looking** setups.
    *   Provide the output strictly in the following JSON format inside a code block.

**JSON Schema:**
{{
  "marketSentiment": "BULLISH" | "BEARISH" | "NEUTRAL",
  "overallSummary": "Brief outlook on whether to buy dips or sell rallies today/tomorrow.",
  "topSectors": [ {{"name": "Sector Name", "strength": 8}} ],
  "weakSectors": [ {{"name": "Sector Name", "strength": 8}} ],
  "stocks": [
    {{
      "symbol": "TICKER",
      "companyName": "Company Name",
      "currentPrice": "Live Price INR (e.g. 1240.50)",
      "entryRange": "Ideal Buy/Sell Zone",
      "targetPrice": "Projected Target (e.g. 1260.00)",
      "stopLoss": "Strict Stop Loss (e.g. 1230.00)",
      "tradeHorizon": "INTRADAY" | "BTST" | "SWING" | "POSITIONAL",
      "setupType": "BREAKOUT" | "REVERSAL" | "MOMENTUM" | "SUPPORT_BOUNCE" | "RESISTANCE_REJECTION",
      "sector": "Sector Name",
      "sectorSentiment": "BULLISH" | "BEARISH" | "NEUTRAL",
      "volumeAnalysis": "e.g., 2x Avg Volume, Accumulation detected",
      "newsSummary": "Key catalyst or reason",
      "newsImpact": "HIGH" | "MEDIUM" | "LOW",
      "recommendation": "BUY" | "SELL",
      "reasoning": "Technical setup description (e.g. crossing 200 EMA with volume)"
    }}
  ]
}}
"""


def build_scan_prompt(index: MarketIndex) -> str:
    return _SCAN_PROMPT_TEMPLATE.format(index=index.value)


class CompletionClient(Protocol):
    async def generate(self, prompt: str, *, system_instruction: str | None = None) -> Completion: ...


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return response.text[:200]


async def _post_json(
    url: str,
    *,
    headers: Dict[str, str],
    body: Dict[str, Any],
    timeout: float,
    provider: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Dict[str, Any]:
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.post(url, headers=headers, json=body)
    except httpx.TimeoutException as exc:
        raise TransportError(f"{provider} request timed out after {timeout:.0f}s.") from exc
    except httpx.HTTPError as exc:
        raise TransportError(f"{provider} request failed: {exc}") from exc

    if response.status_code >= 400:
        detail = _error_detail(response)
        logger.warning("%s API error: %s - %s", provider, response.status_code, detail)
        raise TransportError(f"{provider} API error ({response.status_code}): {detail}", status_code=response.status_code)

    try:
        payload = response.json()
    except ValueError as exc:
        raise TransportError(f"{provider} returned a non-JSON response.") from exc
    if not isinstance(payload, dict):
        raise TransportError(f"{provider} returned an unexpected response shape.")
    return payload


class GeminiCompletionClient:
    """Gemini ``generateContent`` with Google Search grounding enabled."""

    provider = "Gemini"

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.settings = settings
        self._transport = transport

    def _endpoint(self) -> str:
        base = self.settings.gemini_api_url.rstrip("/")
        return f"{base}/models/{self.settings.gemini_model}:generateContent"

    async def generate(self, prompt: str, *, system_instruction: str | None = None) -> Completion:
        api_key = self.settings.gemini_api_key.strip()
        if not api_key:
            logger.error("GEMINI_API_KEY is missing from environment variables.")
            raise TransportError("Gemini API key missing. Configure GEMINI_API_KEY.")

        body: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "tools": [{"google_search": {}}],
            "generationConfig": {"temperature": self.settings.ai_temperature},
        }
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}

        payload = await _post_json(
            self._endpoint(),
            headers={"x-goog-api-key": api_key, "Content-Type": "application/json"},
            body=body,
            timeout=float(self.settings.ai_timeout_seconds),
            provider=self.provider,
            transport=self._transport,
        )

        candidates = payload.get("candidates") or []
        if not candidates or not isinstance(candidates[0], dict):
            feedback = payload.get("promptFeedback") or {}
            reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
            raise TransportError(f"Gemini returned no candidates{f' ({reason})' if reason else ''}.")

        candidate = candidates[0]
        content = candidate.get("content") or {}
        parts = (content.get("parts") or []) if isinstance(content, dict) else []
        text = "".join(str(part.get("text") or "") for part in parts if isinstance(part, dict))

        metadata = candidate.get("groundingMetadata") or {}
        chunks = (metadata.get("groundingChunks") or []) if isinstance(metadata, dict) else []
        citations: List[GroundingChunk] = []
        for chunk in chunks:
            if not isinstance(chunk, dict):
                continue
            web = chunk.get("web")
            citations.append(
                GroundingChunk(
                    web=WebReference(uri=web.get("uri"), title=web.get("title")) if isinstance(web, dict) else None
                )
            )

        return Completion(text=text, citations=citations, model=str(payload.get("modelVersion") or self.settings.gemini_model))


class PerplexityCompletionClient:
    """Perplexity Sonar chat completion; Sonar models search the web on every call."""

    provider = "Perplexity"

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.settings = settings
        self._transport = transport

    async def generate(self, prompt: str, *, system_instruction: str | None = None) -> Completion:
        api_key = self.settings.perplexity_api_key.strip()
        if not api_key:
            logger.error("PERPLEXITY_API_KEY is missing from environment variables.")
            raise TransportError("Perplexity API key missing. Configure PERPLEXITY_API_KEY.")

        messages = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        messages.append({"role": "user", "content": prompt})
        body = {
            "model": self.settings.perplexity_model,
            "messages": messages,
            "temperature": self.settings.ai_temperature,
        }

        payload = await _post_json(
            f"{self.settings.perplexity_api_url.rstrip('/')}/chat/completions",
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            body=body,
            timeout=float(self.settings.ai_timeout_seconds),
            provider=self.provider,
            transport=self._transport,
        )

        choices = payload.get("choices") or []
        if not choices:
            raise TransportError("Perplexity returned no choices.")
        content = ""
        if isinstance(choices[0], dict):
            message = choices[0].get("message", {})
            if isinstance(message, dict):
                content = str(message.get("content") or "")

        citations: List[GroundingChunk] = []
        search_results = payload.get("search_results")
        if isinstance(search_results, list) and search_results:
            for item in search_results:
                if isinstance(item, dict):
                    citations.append(GroundingChunk(web=WebReference(uri=item.get("url"), title=item.get("title"))))
        else:
            for url in payload.get("citations") or []:
                if isinstance(url, str):
                    citations.append(GroundingChunk(web=WebReference(uri=url)))

        return Completion(text=content, citations=citations, model=str(payload.get("model") or self.settings.perplexity_model))


def get_completion_client(settings: Settings) -> CompletionClient:
    if settings.ai_provider == "perplexity":
        return PerplexityCompletionClient(settings)
    return GeminiCompletionClient(settings)
