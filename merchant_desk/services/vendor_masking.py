"""Vendor name masking.

Internal acquirer/provider ids must never reach a merchant. Three layers
enforce this, and all of them read the same VENDOR_NAMES table:

1. Query-time collapse: aggregation pipelines map vendor ids to public
   categories before rows leave the document store (``collapse_expression``).
2. Tool-result sanitization: every tool output passes through
   ``sanitize_text`` before the model sees it.
3. Final-answer audit: ``audit_text`` scans the answer for forbidden ids; a hit
   is logged and the answer is sanitized again.
"""

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Tuple


@dataclass(frozen=True)
class VendorNameTable:
    """Internal vendor id → merchant-facing category."""
    display_names: Mapping[str, str]
    forbidden: FrozenSet[str]
    # Ids that map to a category but are never rewritten in prose (the
    # company's own name appears legitimately in answers).
    passthrough: FrozenSet[str] = frozenset()
    _pattern: "re.Pattern[str]" = field(init=False, repr=False, compare=False)
    _audit_pattern: "re.Pattern[str]" = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        missing = self.forbidden - set(self.display_names)
        if missing:
            raise ValueError(f"Forbidden vendor ids without a display name: {sorted(missing)}")
        if self.forbidden & self.passthrough:
            raise ValueError("A vendor id cannot be both forbidden and passthrough")
        object.__setattr__(self, "display_names", MappingProxyType(dict(self.display_names)))
        object.__setattr__(self, "_pattern", _word_pattern(self.substitutable_ids))
        object.__setattr__(self, "_audit_pattern", _word_pattern(self.forbidden))

    @property
    def substitutable_ids(self) -> Tuple[str, ...]:
        return tuple(sorted(set(self.display_names) - self.passthrough))

    def display_name(self, vendor_id: str) -> str:
        if not vendor_id:
            return vendor_id
        return self.display_names.get(vendor_id.lower().strip(), vendor_id)

    def collapse_groups(self) -> Dict[str, List[str]]:
        """Public name → every internal id merged into it."""
        groups: Dict[str, List[str]] = {}
        for vendor_id in sorted(self.display_names):
            groups.setdefault(self.display_names[vendor_id], []).append(vendor_id)
        return groups

    def sanitize(self, text: str) -> str:
        if not text:
            return text
        return self._pattern.sub(lambda m: self.display_names[m.group(0).lower()], text)

    def audit(self, text: str) -> List[str]:
        if not text:
            return []
        return sorted({m.group(0).lower() for m in self._audit_pattern.finditer(text)})


def _word_pattern(ids) -> "re.Pattern[str]":
    # Longest first so overlapping ids never shadow each other
    alternatives = "|".join(re.escape(i) for i in sorted(ids, key=len, reverse=True))
    return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)


VENDOR_NAMES = VendorNameTable(
    display_names={
        # Card acquirers → merged under "Cards"
        "kushki": "Cards",
        "unlimit": "Cards",
        "guardian": "Cards",
        "tonder": "Cards",
        # Bank transfer providers → merged under "SPEI"
        "bitso": "SPEI",
        "stp": "SPEI",
        # Standalone alternative payment methods
        "oxxopay": "Oxxopay",
        "safetypay": "Cash Vouchers",
        "mercadopago": "MercadoPago",
    },
    forbidden=frozenset({"kushki", "unlimit", "guardian", "bitso", "stp", "safetypay"}),
    passthrough=frozenset({"tonder"}),
)

CARD_CATEGORY = "Cards"


def display_name(vendor_id: str) -> str:
    """Merchant-facing name for a raw vendor id; unknown ids are returned as-is."""
    return VENDOR_NAMES.display_name(vendor_id)


def sanitize_text(text: str) -> str:
    """Replace every internal vendor id (any case, whole word) with its public name."""
    return VENDOR_NAMES.sanitize(text)


def audit_text(text: str) -> List[str]:
    """Forbidden vendor ids still present in text. Empty means safe."""
    return VENDOR_NAMES.audit(text)


def collapse_expression(field_path: str) -> Dict[str, Any]:
    """Aggregation expression mapping a vendor id field to its public name.

    Unknown values pass through unchanged and are caught by sanitize_text.
    """
    branches = [
        {"case": {"$in": [{"$toLower": field_path}, vendor_ids]}, "then": public_name}
        for public_name, vendor_ids in VENDOR_NAMES.collapse_groups().items()
    ]
    return {"$switch": {"branches": branches, "default": field_path}}
