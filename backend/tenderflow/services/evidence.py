"""
Evidence for findings.

Two directions are covered here:

* ``build_evidence_candidates`` scans extracted text for normative lines
  (shall / must / deadlines / submission rules) and produces numbered excerpts
  the analysis step is asked to cite.
* ``locate_excerpt`` maps a finding's text back to a window of the source
  text when no citation resolves, trading precision for recall tier by tier.

Both are pure functions and safe to call on large documents: every scan is
bounded by fixed caps.
"""
import re
from itertools import islice

from tenderflow.schemas.findings import EvidenceCandidate, Findings, Requirement

NOT_FOUND = "Not found in extracted text."

# Excerpt window around a match: lead before it, tail after the matched span.
EXCERPT_LEAD = 200
EXCERPT_TAIL = 260
MIN_NEEDLE_SPAN = 40

# Phrase tiers match case-insensitively and treat any whitespace run as one space,
# so text reflowed by extraction still matches verbatim.
NEEDLE_WORD_COUNTS = (12, 8)
KEYWORD_WINDOW = 700
MAX_QUERY_TOKENS = 12
MAX_OCCURRENCES_PER_TOKEN = 25
MIN_TOKEN_COVERAGE = 2
TOKEN_COVERAGE_TARGET = 6
MIN_TOKEN_LENGTH = 4

LOCATOR_STOPWORDS = {
    "the", "a", "an", "and", "or", "to", "of", "in", "on", "for", "with", "by", "via",
    "is", "are", "be", "as", "at", "from", "that", "this", "these", "those",
    "must", "should", "shall", "will", "may", "can", "not", "only", "all",
}


def _snap_to_word_bounds(text: str, start: int, end: int) -> tuple[int, int]:
    s = max(0, start)
    e = min(len(text), end)
    while s > 0 and not text[s].isspace():
        s -= 1
    while e < len(text) and not text[e - 1].isspace():
        e += 1
    return s, e


def _snippet(text: str, index: int, needle_len: int) -> str:
    start = max(0, index - EXCERPT_LEAD)
    end = min(len(text), index + max(needle_len, MIN_NEEDLE_SPAN) + EXCERPT_TAIL)
    s, e = _snap_to_word_bounds(text, start, end)
    return " ".join(text[s:e].split())


def _search_phrase(text: str, phrase: str) -> re.Match | None:
    words = phrase.split()
    if not words:
        return None
    # Line breaks in extracted text must not defeat an otherwise verbatim match.
    pattern = r"\s+".join(re.escape(w) for w in words)
    return re.search(pattern, text, re.IGNORECASE)


def _query_tokens(words: list[str]) -> list[str]:
    tokens: list[str] = []
    for word in words:
        token = re.sub(r"[\W_]+", "", word).lower()
        if len(token) < MIN_TOKEN_LENGTH or token in LOCATOR_STOPWORDS or token in tokens:
            continue
        tokens.append(token)
    return tokens[:MAX_QUERY_TOKENS]


def locate_excerpt(source_text: str | None, target_phrase: str | None) -> str | None:
    """
    Find a word-aligned excerpt of ``source_text`` that substantiates ``target_phrase``.

    Tiers: exact phrase, then its first 12 and 8 words, then the 700-char
    window covering the most distinct query keywords (at least two).
    Returns ``None`` when nothing resembling the phrase exists.
    """
    text = source_text or ""
    phrase = (target_phrase or "").strip()
    if not text or not phrase:
        return None

    match = _search_phrase(text, phrase)
    if match:
        return _snippet(text, match.start(), match.end() - match.start())

    words = phrase.split()
    for count in NEEDLE_WORD_COUNTS:
        match = _search_phrase(text, " ".join(words[:count]))
        if match:
            return _snippet(text, match.start(), match.end() - match.start())

    tokens = _query_tokens(words)
    if not tokens:
        return None

    occurrences: list[tuple[int, str]] = []
    for token in tokens:
        for m in islice(re.finditer(re.escape(token), text, re.IGNORECASE), MAX_OCCURRENCES_PER_TOKEN):
            occurrences.append((m.start(), token))
    if not occurrences:
        return None

    half = KEYWORD_WINDOW // 2
    target = min(TOKEN_COVERAGE_TARGET, len(tokens))
    best_score, best_index, best_len = 0, occurrences[0][0], len(occurrences[0][1])
    for index, token in occurrences:
        covered = {other for pos, other in occurrences if index - half <= pos <= index + half}
        if len(covered) > best_score:
            best_score, best_index, best_len = len(covered), index, len(token)
            if best_score >= target:
                break

    if best_score < MIN_TOKEN_COVERAGE:
        return None
    return _snippet(text, best_index, best_len)


# ---------------------------------------------------------------------------
# Candidate builder
# ---------------------------------------------------------------------------

_NORMATIVE_RE = re.compile(
    r"\b(shall not|shall|must not|must|required|is required|are required|will be rejected|disqualified|rejection)\b",
    re.IGNORECASE,
)
_MONEY_RE = re.compile(r"\b(kshs?|kes|eur|usd|gbp)\b|\b\d{1,3}(?:,\d{3})+(?:\.\d+)?\b", re.IGNORECASE)
_DEADLINE_RE = re.compile(r"\b(deadline|closing|submit|delivered|on or before|no later than)\b", re.IGNORECASE)
_DATE_RE = re.compile(
    r"\b(\d{1,2}\s+(jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\s+\d{4}|\d{4}-\d{2}-\d{2})\b",
    re.IGNORECASE,
)
_TIME_RE = re.compile(r"\b(\d{1,2}[:.]\d{2}\s*(am|pm)?|\d{1,2}\s*(am|pm))\b", re.IGNORECASE)
_SUBMISSION_RE = re.compile(
    r"\b(sealed envelope|envelope|copies|original|physically|electronic|online portal|upload|address|p\.o\. box|po box)\b",
    re.IGNORECASE,
)
_SECURITY_RE = re.compile(r"\b(tender security|bid security|tender-secure|guarantee|security)\b", re.IGNORECASE)
_NOT_PERMITTED_RE = re.compile(r"\bnot permitted\b", re.IGNORECASE)
_PAGE_RE = re.compile(r"^\[page\s+(\d+)\]", re.IGNORECASE)
_ANCHOR_RE = re.compile(r"^(section|annex|appendix|part)\b", re.IGNORECASE)
_BULLET_RE = re.compile(r"^[•\-]\s+")
_TABLE_RE = re.compile(r"\btable\b", re.IGNORECASE)

MIN_LINE_SCORE = 5
MIN_EXCERPT_CHARS = 30
MAX_EXCERPT_CHARS = 480
MAX_SCANNED_CANDIDATES = 240
MAX_CANDIDATES = 220
TITLE_SCAN_LINES = 80
ANCHOR_LOOKBACK = 8
PAGE_LOOKBACK = 30


def _is_toc_like(line: str) -> bool:
    return bool(re.search(r"\.\.{4,}", line)) or "table of contents" in line.lower()


def _is_title_like(line: str) -> bool:
    t = line.strip()
    if not t:
        return False
    low = t.lower()
    if low.startswith(("standard tender document", "tender document for", "request for", "invitation to tender")):
        return True
    return not _NORMATIVE_RE.search(t) and t == t.upper() and len(t) < 140


def _title_block_end(lines: list[str]) -> int:
    for i, line in enumerate(lines[:TITLE_SCAN_LINES]):
        if "table of contents" in line.lower():
            return i + 1
        if re.match(r"^section\s+\w+", line, re.IGNORECASE) or re.match(r"^invitation to tender", line, re.IGNORECASE):
            return i
    return 0


def _anchor_for(lines: list[str], i: int) -> str | None:
    for j in range(i, max(-1, i - ANCHOR_LOOKBACK - 1), -1):
        line = lines[j]
        if _PAGE_RE.match(line):
            continue
        if _ANCHOR_RE.match(line):
            return line
        if line == line.upper() and 12 <= len(line) <= 120 and not _is_toc_like(line):
            return line
    return None


def _page_for(lines: list[str], i: int) -> int | None:
    for j in range(i, max(-1, i - PAGE_LOOKBACK - 1), -1):
        m = _PAGE_RE.match(lines[j])
        if m:
            return int(m.group(1))
    return None


def _score_line(line: str) -> int:
    score = 0
    if _NORMATIVE_RE.search(line):
        score += 6
    if _DEADLINE_RE.search(line):
        score += 3
    if _DATE_RE.search(line) or _TIME_RE.search(line):
        score += 3
    if _SUBMISSION_RE.search(line):
        score += 2
    if _SECURITY_RE.search(line):
        score += 2
    if _MONEY_RE.search(line):
        score += 1
    if _NOT_PERMITTED_RE.search(line):
        score += 2
    return score


def _excerpt_for(lines: list[str], i: int) -> str:
    parts = []
    anchor = _anchor_for(lines, i)
    if anchor and not _is_title_like(anchor) and not _is_toc_like(anchor):
        parts.append(anchor)
    for k in (i - 1, i, i + 1):
        if 0 <= k < len(lines):
            line = lines[k]
            if not _is_toc_like(line) and not _is_title_like(line):
                parts.append(line)
    excerpt = " ".join(" ".join(parts).split())
    return excerpt[:MAX_EXCERPT_CHARS].strip()


def build_evidence_candidates(extracted_text: str | None) -> list[EvidenceCandidate]:
    lines = [" ".join(raw.split()) for raw in (extracted_text or "").splitlines()]
    lines = [line for line in lines if line]

    candidates: list[EvidenceCandidate] = []
    seen: set[str] = set()
    for i in range(_title_block_end(lines), len(lines)):
        line = lines[i]
        if _is_toc_like(line) or _is_title_like(line):
            continue
        score = _score_line(line)
        if score < MIN_LINE_SCORE:
            continue

        excerpt = _excerpt_for(lines, i)
        if len(excerpt) < MIN_EXCERPT_CHARS or _is_toc_like(excerpt) or _is_title_like(excerpt):
            continue
        key = excerpt.lower()
        if key in seen:
            continue
        seen.add(key)

        if _BULLET_RE.match(line):
            kind = "bullet"
        elif _TABLE_RE.search(line):
            kind = "table_row"
        else:
            kind = "clause"

        candidates.append(EvidenceCandidate(
            id=f"E{len(candidates) + 1:03d}",
            excerpt=excerpt,
            page=_page_for(lines, i),
            anchor=_anchor_for(lines, i),
            kind=kind,
            score=score,
        ))
        if len(candidates) >= MAX_SCANNED_CANDIDATES:
            break

    candidates.sort(key=lambda c: (-c.score, len(c.excerpt)))
    return candidates[:MAX_CANDIDATES]


def resolve_evidence(findings: Findings, candidates: list[EvidenceCandidate]) -> Findings:
    """
    Keep only citations that resolve to a candidate and backfill ``source``.

    MUST items without evidence are downgraded to INFO for manual checking;
    risks without evidence become clarification questions.
    """
    by_id = {c.id: c for c in candidates}

    def _resolve(ids: list[str]) -> tuple[list[str], str]:
        valid = [i for i in ids if i in by_id]
        if not valid:
            return [], NOT_FOUND
        return valid, by_id[valid[0]].excerpt

    requirements = []
    for req in findings.requirements:
        ids, source = _resolve(req.evidence_ids)
        if req.type == "MUST" and not ids:
            requirements.append(Requirement(
                type="INFO",
                text=f"Manual check: {req.text}",
                evidence_ids=[],
                source=NOT_FOUND,
            ))
            continue
        requirements.append(req.model_copy(update={"evidence_ids": ids, "source": source}))

    clarifications = list(findings.clarifications)
    risks = []
    for risk in findings.risks:
        ids, source = _resolve(risk.evidence_ids)
        if not ids:
            label = " - ".join(part for part in (risk.title, risk.detail) if part)
            clarifications.append(f"Manual check (risk): {label}")
            continue
        risks.append(risk.model_copy(update={"evidence_ids": ids, "source": source}))

    return findings.model_copy(update={
        "requirements": requirements,
        "risks": risks,
        "clarifications": clarifications,
    })
