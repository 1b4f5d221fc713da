"""
Analysis engine: asks each selected AI engine how it sees a keyword and
aggregates the answers.

Engine ids map to OpenAI models through ENGINE_MODELS. A single engine failing
is recorded in its result entry; the call as a whole raises EngineFailure only
when no engine produced a summary.
"""
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol

from openai import APIConnectionError, AuthenticationError, OpenAI, RateLimitError

from app.core.config import get_engine_models, get_openai_keys, settings
from app.services.errors import EngineFailure

logger = logging.getLogger(__name__)
OPENAI_RETRY_WAIT = 1.5
OPENAI_RETRY_ONCE = (RateLimitError, APIConnectionError)

# Move on to the next key when one is rejected or throttled
OPENAI_FALLBACK_EXCEPTIONS = (AuthenticationError, RateLimitError)

_openai_clients: dict[str, OpenAI] = {}

_URL_RE = re.compile(r"https?://[^\s)\]>\"']+")

DEFAULT_PROMPT = (
    'What do you know about "{keyword}"? Summarise the public perception, '
    "notable strengths and weaknesses, and how it compares to alternatives."
)

_POSITIVE_WORDS = (
    "excellent", "great", "positive", "leading", "trusted", "reliable", "innovative",
    "popular", "recommended", "strong", "praised", "reputable", "favorable",
)
_NEGATIVE_WORDS = (
    "poor", "negative", "complaint", "complaints", "lawsuit", "scandal", "unreliable",
    "criticized", "criticised", "weak", "controversy", "decline", "issues",
)


@dataclass(frozen=True)
class TaskIdentity:
    client_name: str
    keyword: str


@dataclass
class AnalysisOutput:
    results: list[dict]
    insights: dict
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc).replace(tzinfo=None))


class AnalysisEngine(Protocol):
    def analyze(self, task: TaskIdentity, configuration: dict) -> AnalysisOutput: ...


def _get_client_for_key(key: str) -> OpenAI:
    if key not in _openai_clients:
        _openai_clients[key] = OpenAI(api_key=key, timeout=settings.openai_timeout_seconds)
    return _openai_clients[key]


def _openai_safe_call(create_fn):
    """One retry after OPENAI_RETRY_WAIT seconds on rate-limit/connection errors."""
    try:
        return create_fn()
    except OPENAI_RETRY_ONCE as e:
        logger.warning("OpenAI retry after %s: %s", type(e).__name__, e)
        time.sleep(OPENAI_RETRY_WAIT)
        return create_fn()


def _openai_create_with_fallback(create_fn):
    """
    create_fn(client) with each configured key in turn; AuthenticationError or
    RateLimitError moves on to the next key. Re-raises the last error.
    """
    keys = get_openai_keys()
    if not keys:
        raise EngineFailure("OPENAI_API_KEY is not set or invalid.")
    last_exc: Exception | None = None
    for key in keys:
        try:
            client = _get_client_for_key(key)
            return _openai_safe_call(lambda: create_fn(client))
        except OPENAI_FALLBACK_EXCEPTIONS as e:
            last_exc = e
            logger.warning("OpenAI key skipped (%s), trying next: %s", key[:12] + "...", e)
            continue
    raise EngineFailure(f"All OpenAI keys failed: {last_exc}")


def build_prompt(task: TaskIdentity, configuration: dict) -> str:
    custom = (configuration.get("custom_prompt") or "").strip()
    if custom:
        prompt = custom.replace("{keyword}", task.keyword)
    else:
        prompt = DEFAULT_PROMPT.format(keyword=task.keyword)
        analysis_type = configuration.get("analysis_type")
        if analysis_type == "individual":
            prompt += " Treat the keyword as the name of a person."
        elif analysis_type == "brand":
            prompt += " Treat the keyword as a brand or company."
        intent = (configuration.get("intent_category") or "").strip()
        if intent:
            prompt += f" Focus on the {intent} search intent."
    return prompt + " Include any links to sources."


def extract_urls(text: str) -> list[str]:
    seen: list[str] = []
    for url in _URL_RE.findall(text or ""):
        url = url.rstrip(".,;:")
        if url not in seen:
            seen.append(url)
    return seen


def classify_sentiment(text: str) -> str:
    lowered = (text or "").lower()
    pos = sum(lowered.count(w) for w in _POSITIVE_WORDS)
    neg = sum(lowered.count(w) for w in _NEGATIVE_WORDS)
    if pos and neg and abs(pos - neg) <= 1:
        return "mixed"
    if pos > neg:
        return "positive"
    if neg > pos:
        return "negative"
    return "neutral"


def aggregate_insights(results: list[dict]) -> dict:
    successful = [r for r in results if not r.get("error") and r.get("summary")]
    breakdown: dict[str, dict] = {
        s: {"count": 0, "engines": []} for s in ("positive", "negative", "neutral", "mixed")
    }
    sources: dict[str, dict] = {}
    for r in successful:
        sentiment = classify_sentiment(r["summary"])
        breakdown[sentiment]["count"] += 1
        breakdown[sentiment]["engines"].append(r["engine"])
        for url in r.get("sources", []):
            entry = sources.setdefault(url, {"source": url, "count": 0, "engines": []})
            entry["count"] += 1
            entry["engines"].append(r["engine"])
    if successful:
        overall = max(breakdown, key=lambda s: (breakdown[s]["count"], s == "neutral"))
    else:
        overall = "neutral"
    return {
        "overall_sentiment": overall,
        "sentiment_breakdown": breakdown,
        "url_sources": sorted(sources.values(), key=lambda e: (-e["count"], e["source"])),
        "engines_succeeded": len(successful),
        "engines_failed": len(results) - len(successful),
    }


class OpenAIAnalysisEngine:
    def __init__(self, engine_models: dict[int, str] | None = None):
        self.engine_models = engine_models if engine_models is not None else get_engine_models()

    def analyze(self, task: TaskIdentity, configuration: dict) -> AnalysisOutput:
        engine_ids = list(configuration.get("engine_ids") or [])
        if not engine_ids:
            raise EngineFailure("No analysis engines selected for this schedule")
        prompt = build_prompt(task, configuration)
        logger.info("Analyzing %r for %s with engines %s", task.keyword, task.client_name, engine_ids)
        results = [self._run_engine(engine_id, prompt) for engine_id in engine_ids]
        failures = [r for r in results if r.get("error")]
        if len(failures) == len(results):
            detail = "; ".join(f"{r['engine']}: {r['error']}" for r in failures)
            raise EngineFailure(f"All engines failed: {detail}")
        return AnalysisOutput(results=results, insights=aggregate_insights(results))

    def _run_engine(self, engine_id: int, prompt: str) -> dict:
        model = self.engine_models.get(engine_id)
        name = f"Engine {engine_id}"
        if not model:
            return {"engine": name, "engine_id": engine_id, "model": "unknown", "summary": "",
                    "error": f"Engine with ID {engine_id} not found"}
        t0 = time.perf_counter()
        try:
            response = _openai_create_with_fallback(
                lambda client: client.chat.completions.create(
                    model=model,
                    messages=[{"role": "user", "content": prompt}],
                )
            )
            summary = (response.choices[0].message.content or "").strip()
        except Exception as e:
            logger.warning("Engine %s (%s) failed: %s", engine_id, model, e)
            return {"engine": name, "engine_id": engine_id, "model": model, "summary": "",
                    "error": str(e)[:500] or type(e).__name__}
        return {
            "engine": name,
            "engine_id": engine_id,
            "model": model,
            "summary": summary,
            "sources": extract_urls(summary),
            "latency_ms": round((time.perf_counter() - t0) * 1000, 2),
        }
