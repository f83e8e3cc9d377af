"""
Client for the AI analysis proxy.

The proxy takes {"newsItem": ..., "analysisType": ...} and streams the
model's answer back as newline-delimited `data: {json}` frames (OpenAI
chat-completion deltas), ending with `data: [DONE]` or stream closure.

build_prompts is the proxy-side half: it turns an item and analysis type
into the system and user prompts the proxy sends to the model, with inputs
clipped. The client never calls it; deployments that run the proxy in
Python, or call the model directly, do.
"""
from __future__ import annotations

import json
import logging
from typing import Iterator, List, Optional, Tuple, Union

import httpx

from intelboard import config
from intelboard.errors import AnalysisError
from intelboard.schema import AnalysisType, IntelItem

logger = logging.getLogger(__name__)

_DATA_PREFIX = "data: "
_DONE = "[DONE]"


class StreamDecoder:
    """
    Incremental decoder for the proxy's `data:` line framing.

    feed() returns the content fragments completed by the chunk. A trailing
    line without its newline stays buffered until the rest arrives. A data
    payload that is not valid JSON is held and joined with the following
    line; if the following line opens a new frame instead, the held fragment
    is dropped.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._held: Optional[str] = None
        self.done = False

    def feed(self, text: str) -> List[str]:
        if self.done:
            return []
        self._buffer += text
        out: List[str] = []
        while not self.done:
            idx = self._buffer.find("\n")
            if idx == -1:
                break
            line = self._buffer[:idx]
            self._buffer = self._buffer[idx + 1:]
            out.extend(self._handle_line(line))
        return out

    def close(self) -> List[str]:
        """Stream closed: treat whatever is buffered as a final line."""
        out: List[str] = []
        if not self.done and self._buffer:
            line, self._buffer = self._buffer, ""
            out.extend(self._handle_line(line))
        if self._held is not None:
            logger.warning("analysis stream closed with an incomplete frame: %r", self._held[:80])
            self._held = None
        self.done = True
        return out

    def _handle_line(self, line: str) -> List[str]:
        if line.endswith("\r"):
            line = line[:-1]

        if self._held is not None:
            held, self._held = self._held, None
            if line.startswith(_DATA_PREFIX) or line.startswith(":") or not line.strip():
                logger.warning("dropping incomplete analysis frame: %r", held[:80])
            else:
                return self._handle_payload(held + line)

        if line.startswith(":") or not line.strip():
            return []
        if not line.startswith(_DATA_PREFIX):
            return []
        return self._handle_payload(line[len(_DATA_PREFIX):])

    def _handle_payload(self, payload: str) -> List[str]:
        payload = payload.strip()
        if payload == _DONE:
            self.done = True
            return []
        try:
            parsed = json.loads(payload)
        except json.JSONDecodeError:
            self._held = payload
            return []
        content = _delta_content(parsed)
        return [content] if content else []


def _delta_content(parsed: object) -> str:
    if not isinstance(parsed, dict):
        return ""
    choices = parsed.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return ""
    delta = choices[0].get("delta") or {}
    content = delta.get("content") if isinstance(delta, dict) else None
    return content if isinstance(content, str) else ""


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"Analysis failed (HTTP {resp.status_code})"


class AnalysisClient:
    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = config.ANALYSIS_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.url = url or config.ANALYSIS_URL
        self.api_key = api_key if api_key is not None else config.ANALYSIS_KEY
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "AnalysisClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def stream(self, item: IntelItem, analysis_type: Union[AnalysisType, str]) -> Iterator[str]:
        """Yield text fragments as they arrive. One AnalysisError on failure, no retries."""
        if not self.url:
            raise AnalysisError("Analysis endpoint is not configured (INTELBOARD_ANALYSIS_URL)")
        analysis_type = AnalysisType(analysis_type)

        payload = {"newsItem": item.to_record(), "analysisType": analysis_type.value}
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        logger.info("analysis: %s for item %s", analysis_type.value, item.id)
        decoder = StreamDecoder()
        try:
            with self._client.stream("POST", self.url, json=payload, headers=headers) as resp:
                if resp.status_code >= 400:
                    resp.read()
                    raise AnalysisError(_error_message(resp), status_code=resp.status_code)
                for chunk in resp.iter_text():
                    yield from decoder.feed(chunk)
                    if decoder.done:
                        break
                yield from decoder.close()
        except httpx.HTTPError as exc:
            raise AnalysisError(f"Analysis request failed: {exc}") from exc

    def analyze(self, item: IntelItem, analysis_type: Union[AnalysisType, str]) -> str:
        return "".join(self.stream(item, analysis_type))


# ----------------------------
# Prompt construction (proxy side)
# ----------------------------
def _clip(value: object, limit: int) -> str:
    return str(value or "")[:limit]


def build_prompts(item: IntelItem, analysis_type: Union[AnalysisType, str]) -> Tuple[str, str]:
    """System and user prompt for one analysis request, with clipped inputs."""
    analysis_type = AnalysisType(analysis_type)

    title = _clip(item.title, 500)
    summary = _clip(item.summary, 2000)
    region = _clip(item.region, 100)
    country = _clip(item.country, 100)
    category = _clip(item.category.value, 50)
    threat = _clip(item.threat_level.value, 20)
    actor = _clip(item.actor_type.value, 50)
    tags = ", ".join(_clip(t, 50) for t in item.tags[:10])

    if analysis_type == AnalysisType.SUMMARY:
        system = "You are an OSINT analyst. Provide a concise 2-3 sentence intelligence summary."
        user = (
            f"Summarize this intelligence report:\nTitle: {title}\nSummary: {summary}\n"
            f"Region: {region}, {country}\nCategory: {category}\nThreat Level: {threat}"
        )
    elif analysis_type == AnalysisType.THREAT_ASSESSMENT:
        system = "You are a threat intelligence analyst. Assess the threat level and provide recommendations."
        user = (
            f"Assess this threat:\nTitle: {title}\nDetails: {summary}\nLocation: {country}\n"
            f"Current Assessment: {threat}\n\n"
            "Provide: 1) Threat analysis 2) Potential impact 3) Recommended actions"
        )
    elif analysis_type == AnalysisType.TREND_PREDICTION:
        system = "You are a geopolitical analyst. Predict potential developments based on this intelligence."
        user = (
            f"Based on this intel, predict likely developments:\nTitle: {title}\nDetails: {summary}\n"
            f"Region: {region}\nCategory: {category}\nActor Type: {actor}"
        )
    else:
        system = "You are an intelligence analyst. Identify related events and patterns."
        user = (
            f"Identify potential related events and patterns for:\nTitle: {title}\nDetails: {summary}\n"
            f"Tags: {tags}\nCategory: {category}"
        )
    return system, user
