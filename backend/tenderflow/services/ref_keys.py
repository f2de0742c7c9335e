"""
Stable reference keys for findings derived from job results.

Findings are regenerated by every analysis run and carry no identity of their
own, so overlay rows are joined to them through a key computed from content.
The derivation below is a versioned contract: changing it orphans every
stored overlay row.
"""
from tenderflow.utils.hashing import sha256_text

REF_KEY_VERSION = "v1"

ITEM_TYPES = ("requirement", "risk", "clarification", "outline")

COMPLIANCE_PREFIX = "cm__"


def normalize_key_text(value: str | None) -> str:
    """Fold whitespace runs and case; keep every other character."""
    return " ".join(str(value or "").split()).lower()


def derive_ref_key(job_id: str, item_type: str, text: str, extra: str | None = None) -> str:
    if item_type not in ITEM_TYPES:
        raise ValueError(f"Unknown item type: {item_type!r}")
    base = f"{job_id}|{item_type}|{normalize_key_text(text)}|{normalize_key_text(extra)}"
    return f"{item_type}_{sha256_text(base)[:16]}"


def compliance_ref_key(base_ref_key: str) -> str:
    return f"{COMPLIANCE_PREFIX}{base_ref_key}"


def requirement_key(job_id: str, level: str, text: str) -> str:
    return derive_ref_key(job_id, "requirement", text, level.upper())


def risk_key(job_id: str, severity: str, title: str, detail: str = "") -> str:
    return derive_ref_key(job_id, "risk", title or detail, severity.lower())


def clarification_key(job_id: str, question: str) -> str:
    return derive_ref_key(job_id, "clarification", question)


def outline_key(job_id: str, section_title: str) -> str:
    return derive_ref_key(job_id, "outline", section_title)
