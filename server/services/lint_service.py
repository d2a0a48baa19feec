# services/lint_service.py

"""
Panel lint evaluator - quality and policy checks over generated panels

Everything in here is pure: no I/O, no job mutation. The orchestrator and
the job service decide where the results are stored.
"""

import hashlib
import json
import re
import unicodedata
from typing import List, Dict, Optional, Iterable

from server.models.job import (
    Issue,
    Severity,
    LintResult,
    ScoreWeight,
    PanelResult,
    PanelStatus,
    PanelLintState
)
from server.models.panel import Panel

PLACEHOLDER_RE = re.compile(r"\{\s*[a-zA-Z0-9_]+\s*\}")
GEO_SEPARATOR_RE = re.compile(r"[-\s]+")

# Overlap threshold: a keyword is flagged once it is used more than this often
KEYWORD_OVERLAP_LIMIT = 2

GEO_SCORE_MATCH = 98
GEO_SCORE_MISSING = 70

# Fixed sub-scores for the categories no lint rule measures yet
DEFAULT_BREAKDOWN = {
    "completeness": ScoreWeight(score=95, weight=0.3),
    "variance": ScoreWeight(score=92, weight=0.3),
    "geo_integration": ScoreWeight(score=GEO_SCORE_MATCH, weight=0.2),
    "readability": ScoreWeight(score=95, weight=0.1),
    "keywords": ScoreWeight(score=90, weight=0.1),
}


def normalize(text: str) -> str:
    """Lowercase, strip diacritics and trim"""
    decomposed = unicodedata.normalize("NFD", text.lower())
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return stripped.strip()


def geo_match(title: str, term: Optional[str]) -> bool:
    """Check whether a geo term occurs in the title as a whole word.

    Hyphens and whitespace inside the term are interchangeable, so
    "Bad Homburg" matches "Bad-Homburg" and vice versa.
    """
    if not term or not term.strip():
        return False

    parts = [re.escape(p) for p in GEO_SEPARATOR_RE.split(normalize(term)) if p]
    if not parts:
        return False

    pattern = r"\b" + r"[-\s]+".join(parts) + r"\b"
    return re.search(pattern, normalize(title)) is not None


def _content_blob(panel: Panel) -> str:
    return json.dumps(
        {
            "title": panel.title,
            "summary": panel.summary,
            "sections": [s.model_dump() for s in panel.sections],
            "faqs": [f.model_dump() for f in panel.faqs],
        },
        ensure_ascii=False
    )


def lint_panel(panel: Panel, city: Optional[str] = None, region: Optional[str] = None) -> List[Issue]:
    """Run the per-panel rules in their fixed order"""
    issues = []

    if PLACEHOLDER_RE.search(_content_blob(panel)):
        issues.append(Issue(
            code="PLACEHOLDER_LEAK",
            severity=Severity.ERROR,
            message="Unaufgelöste Platzhalter (z.B. {city}) im Inhalt gefunden."
        ))

    title = panel.title or ""
    if not geo_match(title, city) and not geo_match(title, region):
        issues.append(Issue(
            code="TITLE_NO_GEO",
            severity=Severity.WARN,
            message="Der Titel der Sektion sollte den Ort oder die Region enthalten."
        ))

    return issues


def lint_keyword_duplicates(panels: Iterable[Panel]) -> List[Issue]:
    """Flag keywords used more than twice across the whole panel set"""
    frequency: Dict[str, int] = {}

    for panel in panels:
        for keyword in panel.keywords:
            key = normalize(keyword)
            if key:
                frequency[key] = frequency.get(key, 0) + 1

    duplicates = [k for k, count in frequency.items() if count > KEYWORD_OVERLAP_LIMIT]
    if not duplicates:
        return []

    return [Issue(
        code="KEYWORD_OVERLAP_WARN",
        severity=Severity.WARN,
        message=(
            f"Folgende Schlüsselwörter werden sehr häufig verwendet: {', '.join(duplicates)}. "
            "Dies kann die Themenvielfalt reduzieren."
        )
    )]


def content_hash(panel: Panel) -> str:
    """Deterministic hash over the editable content of a panel"""
    payload = json.dumps(
        {
            "title": panel.title,
            "summary": panel.summary,
            "sections": [s.model_dump() for s in panel.sections],
            "faqs": [f.model_dump() for f in panel.faqs],
            "keywords": list(panel.keywords),
        },
        ensure_ascii=False,
        separators=(",", ":")
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def set_hash(panels: Iterable[Panel]) -> str:
    """Fingerprint of a whole panel set, order-sensitive"""
    digest = hashlib.sha256()
    for panel in panels:
        digest.update(content_hash(panel).encode("ascii"))
    return digest.hexdigest()


def quality_breakdown(
        issues: List[Issue],
        base: Optional[Dict[str, ScoreWeight]] = None
) -> Dict[str, ScoreWeight]:
    """Sub-scores for a panel, with the geo category tied to TITLE_NO_GEO"""
    breakdown = {k: v.model_copy() for k, v in (base or DEFAULT_BREAKDOWN).items()}
    geo_missing = any(i.code == "TITLE_NO_GEO" for i in issues)
    breakdown["geo_integration"] = ScoreWeight(
        score=GEO_SCORE_MISSING if geo_missing else GEO_SCORE_MATCH,
        weight=DEFAULT_BREAKDOWN["geo_integration"].weight
    )
    return breakdown


def quality_score(breakdown: Dict[str, ScoreWeight]) -> int:
    total = sum(v.score * v.weight for v in breakdown.values())
    # Half-up rounding; scores are never negative
    return int(total + 0.5)


def evaluate_panel(
        panel: Panel,
        city: Optional[str] = None,
        region: Optional[str] = None,
        base: Optional[Dict[str, ScoreWeight]] = None
) -> LintResult:
    """Lint a panel and build the full lint result including its breakdown"""
    issues = lint_panel(panel, city, region)
    return LintResult(
        passed=not any(i.severity == Severity.ERROR for i in issues),
        has_warnings=any(i.severity == Severity.WARN for i in issues),
        issues=issues,
        content_hash=content_hash(panel),
        quality_breakdown=quality_breakdown(issues, base)
    )


def unlinted_result(panel: Panel) -> LintResult:
    """Lint result used when the linter is switched off"""
    return LintResult(
        passed=True,
        has_warnings=False,
        issues=[],
        content_hash=content_hash(panel),
        quality_breakdown={k: v.model_copy() for k, v in DEFAULT_BREAKDOWN.items()}
    )


def is_stale(result: PanelResult) -> bool:
    """True when the panel was edited after its last lint pass"""
    if result.panel is None or result.lint_result is None:
        return False
    return content_hash(result.panel) != result.lint_result.content_hash


def lint_state(result: PanelResult) -> PanelLintState:
    if result.status != PanelStatus.OK or result.panel is None or result.lint_result is None:
        return PanelLintState.NONE
    if is_stale(result):
        return PanelLintState.STALE
    if result.lint_result.passed:
        return PanelLintState.PASSED
    return PanelLintState.FAILED
