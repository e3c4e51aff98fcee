"""
AI Relevance Filter - one batched LLM call per keyword.

Backends:
- ollama (local)
- groq (OpenAI-compatible HTTP API)
"""

from __future__ import annotations

import json
import logging
import os
import re
import time
from typing import Dict, Iterable, List, Optional, Set, Tuple
from urllib import error, request

from models import ScrapedPosting

logger = logging.getLogger(__name__)

GROQ_URL = "https://api.groq.com/openai/v1/chat/completions"
CODE_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)

SENIOR_TITLE_WORDS = '"Senior", "Sr.", "Staff", "Principal", "Lead", "Director", "VP", "Head of", "Manager", or "Architect"'


def pre_filter_by_keywords(postings: Iterable[ScrapedPosting],
                           exclude_keywords: List[str]) -> Tuple[List[ScrapedPosting], List[ScrapedPosting]]:
    """Split postings into (passed, rejected) by case-insensitive title keyword match."""
    lowered = [kw.lower() for kw in exclude_keywords if kw and kw.strip()]
    passed: List[ScrapedPosting] = []
    rejected: List[ScrapedPosting] = []
    for posting in postings:
        title = posting.title.lower()
        if any(kw in title for kw in lowered):
            rejected.append(posting)
        else:
            passed.append(posting)
    return passed, rejected


def dedupe_by_title_company(postings: Iterable[ScrapedPosting]) -> Tuple[List[ScrapedPosting], int]:
    """Keep the first posting of each title+company pair."""
    seen: Set[str] = set()
    unique: List[ScrapedPosting] = []
    duplicates = 0
    for posting in postings:
        key = f"{posting.title.lower().strip()}|{posting.company.lower().strip()}"
        if key in seen:
            duplicates += 1
            continue
        seen.add(key)
        unique.append(posting)
    return unique, duplicates


def build_relevance_prompt(profile_summary: str, postings: List[ScrapedPosting],
                           rules: Dict[str, List[str]]) -> str:
    job_list = "\n".join(
        f'- ID: {p.site_id} | Title: "{p.title}" | Company: "{p.company}"' for p in postings
    )

    seniority = rules.get("target_seniority") or []
    seniority_section = ""
    if seniority:
        levels = ", ".join(seniority)
        seniority_section = (
            f"\nTARGET SENIORITY LEVELS: {levels}\n"
            "SENIORITY RULES:\n"
            f"- REJECT any job with {SENIOR_TITLE_WORDS} in the title UNLESS the candidate's "
            "target seniority includes that level.\n"
            f"- The candidate is targeting: {levels} level roles. Do NOT include roles above this level."
        )

    tech = rules.get("preferred_tech_stack") or []
    tech_section = ""
    if tech:
        tech_section = (
            f"\nCANDIDATE'S TECH STACK: {', '.join(tech)}\n"
            "- REJECT roles focused on unrelated tech domains (e.g., embedded systems, hardware, "
            "ERP platforms like Guidewire/SAP/Salesforce, mainframe, COBOL, etc.) unless the title "
            "is a generic software role."
        )

    return f"""You are a STRICT job relevance filter. Given a candidate profile and a list of job postings (title + company only), determine which jobs are RELEVANT.

RULES - follow these exactly:
1. A job is RELEVANT only if the title directly matches the candidate's skills, experience level, and target role type.
2. When in doubt, REJECT. It is better to miss a marginal job than to include garbage.
3. REJECT jobs in unrelated engineering fields (embedded, mechanical, electrical, civil, hardware, systems/network engineering, test/QA engineering).
4. REJECT jobs for niche enterprise platforms the candidate has no experience with (Guidewire, SAP, Salesforce, Mainframe, etc.).
5. REJECT duplicate-looking entries (same title + same company appearing multiple times) - keep only ONE.
{seniority_section}
{tech_section}

CANDIDATE PROFILE:
{profile_summary}

JOB POSTINGS:
{job_list}

Respond with ONLY valid JSON (no markdown, no code fences). Return ONLY the ID values for jobs that genuinely match this candidate:
{{
  "relevantIds": ["id1", "id2", "id3"]
}}"""


def parse_relevant_ids(text: str) -> List[str]:
    """Extract relevantIds from a model response. Raises ValueError when absent."""
    cleaned = CODE_FENCE_PATTERN.sub("", (text or "").strip()).strip()
    payload = None
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError:
        match = JSON_OBJECT_PATTERN.search(cleaned)
        if match:
            try:
                payload = json.loads(match.group(0))
            except json.JSONDecodeError:
                payload = None
    if not isinstance(payload, dict) or not isinstance(payload.get("relevantIds"), list):
        raise ValueError("Invalid relevance filter response - expected { relevantIds: [...] }")
    return [str(item) for item in payload["relevantIds"]]


class RelevanceFilter:
    """Filters a keyword's postings against the candidate profile."""

    def __init__(self, config) -> None:
        self.config = config
        self.enabled = config.is_ai_enabled()
        self.backend = config.get_ai_backend()
        self.model = config.get_ai_model()
        self.timeout = config.get_ai_timeout_seconds()
        self.debug = config.get_ai_debug()
        if self.backend not in {"ollama", "groq"}:
            logger.warning("Unknown AI backend '%s'; falling back to 'ollama'", self.backend)
            self.backend = "ollama"

    def filter_relevant(self, profile_summary: str, postings: List[ScrapedPosting],
                        rules: Optional[Dict[str, List[str]]] = None) -> Set[str]:
        """Return the site ids worth keeping.

        Any backend failure (timeout included) keeps every posting that
        survived the keyword pre-filter.
        """
        if not postings:
            return set()
        rules = rules or {}

        passed, rejected = pre_filter_by_keywords(postings, rules.get("exclude_title_keywords") or [])
        if rejected:
            logger.info(
                "Keyword pre-filter: %s -> %s (rejected: %s)",
                len(postings), len(passed), [p.title for p in rejected],
            )
        unique, duplicates = dedupe_by_title_company(passed)
        if duplicates:
            logger.info("Dedup filter: %s -> %s (removed %s duplicates)", len(passed), len(unique), duplicates)
        if not unique:
            return set()

        candidate_ids = {p.site_id for p in unique}
        if not self.enabled:
            return candidate_ids

        prompt = build_relevance_prompt(profile_summary, unique, rules)
        logger.info("AI filtering %s jobs via %s (%s)...", len(unique), self.backend, self.model)
        started = time.monotonic()
        try:
            text = self._generate(prompt)
            if self.debug:
                logger.debug("AI raw response: %s", text)
            relevant = set(parse_relevant_ids(text))
        except Exception as exc:
            logger.error("Failed to filter %s jobs for relevance, keeping all: %s", len(unique), exc)
            return candidate_ids

        unknown = relevant - candidate_ids
        if unknown:
            logger.debug("Ignoring ids not in the candidate list: %s", sorted(unknown))
        kept = relevant & candidate_ids
        logger.info(
            "AI relevance filter complete: input=%s after_keywords=%s after_dedup=%s kept=%s (%.0fms)",
            len(postings), len(passed), len(unique), len(kept), (time.monotonic() - started) * 1000,
        )
        return kept

    def _generate(self, prompt: str) -> str:
        if self.backend == "groq":
            return self._generate_groq(prompt)
        return self._generate_ollama(prompt)

    def _generate_ollama(self, prompt: str) -> str:
        # Lazy import keeps runs with ai_filter.enabled=false from crashing if dependency
        # is missing in the active interpreter.
        import importlib

        ollama = importlib.import_module("ollama")
        client = ollama.Client(timeout=self.timeout)
        response = client.generate(model=self.model, prompt=prompt, format="json")
        return str((response or {}).get("response") or "")

    def _generate_groq(self, prompt: str) -> str:
        api_key = (os.environ.get("GROQ_API_KEY") or "").strip()
        if not api_key:
            raise RuntimeError("GROQ_API_KEY is not set")

        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": 0,
        }
        req = request.Request(
            url=GROQ_URL,
            data=json.dumps(payload).encode("utf-8"),
            method="POST",
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
        )
        try:
            with request.urlopen(req, timeout=self.timeout) as resp:
                body = resp.read().decode("utf-8", errors="replace")
        except error.HTTPError as exc:
            details = exc.read().decode("utf-8", errors="replace")
            raise RuntimeError(f"Groq API HTTP {exc.code}: {details}") from exc

        result = json.loads(body or "{}")
        choices = result.get("choices") or []
        if not choices:
            return ""
        message = choices[0].get("message") if isinstance(choices[0], dict) else {}
        if not isinstance(message, dict):
            return ""
        return str(message.get("content") or "")
