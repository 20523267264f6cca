from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import DocumentParseError, InvalidRule

MAX_FIELDS = 6
MIN_FIELDS = 2
FIELD_NAMES: tuple[str, ...] = tuple(f"v{i}" for i in range(MAX_FIELDS))

# Every field is a keyword: exact match, no analysis.
INDEX_MAPPING: dict[str, Any] = {
    "mappings": {
        "properties": {
            name: {"type": "keyword"} for name in ("ptype",) + FIELD_NAMES
        }
    }
}

# Sections a stored ptype may belong to; "p2" and "g2" style ptypes share them.
POLICY_SECTIONS = ("p", "g")


def document_id(rule: Sequence[str]) -> str:
    """Derive the document key from the first three rule fields.

    Rules agreeing on ``v0``, ``v1`` and ``v2`` map to the same key, so the
    later write replaces the earlier one. A missing third field counts as "".
    """
    v2 = rule[2] if len(rule) > 2 else ""
    return f"{rule[0]}:{rule[1]}:{v2}".replace("/", "_")


def section_for_ptype(ptype: str) -> str:
    """Return the model section ("p" or "g") a ptype lives in."""
    section = ptype[:1]
    if section not in POLICY_SECTIONS:
        raise DocumentParseError(f"ptype {ptype!r} does not belong to a policy section")
    return section


@dataclass(frozen=True)
class PolicyRecord:
    """One policy rule as persisted in the store."""

    ptype: str
    fields: tuple[str, ...]

    @classmethod
    def from_rule(cls, ptype: str, rule: Iterable[str]) -> "PolicyRecord":
        values = tuple(rule)
        if not isinstance(ptype, str) or not ptype:
            raise InvalidRule("ptype must be a non-empty string")
        if len(values) < MIN_FIELDS:
            raise InvalidRule(
                f"rule needs at least {MIN_FIELDS} fields, got {len(values)}: {list(values)!r}"
            )
        if len(values) > MAX_FIELDS:
            raise InvalidRule(
                f"rule has {len(values)} fields; at most {MAX_FIELDS} can be stored"
            )
        for value in values:
            if not isinstance(value, str):
                raise InvalidRule(f"rule fields must be strings, got {value!r}")
        return cls(ptype=ptype, fields=values)

    @property
    def doc_id(self) -> str:
        return document_id(self.fields)

    @property
    def rule(self) -> list[str]:
        return list(self.fields)

    def to_document(self) -> dict[str, str]:
        # Every supplied field is written, empty strings included, so a
        # reload never sees a gap in what this adapter stored.
        doc = {"ptype": self.ptype}
        doc.update(zip(FIELD_NAMES, self.fields))
        return doc


class _StoredPolicy(BaseModel):
    model_config = ConfigDict(extra="ignore", strict=True)

    ptype: str = Field(min_length=1)
    v0: Optional[str] = None
    v1: Optional[str] = None
    v2: Optional[str] = None
    v3: Optional[str] = None
    v4: Optional[str] = None
    v5: Optional[str] = None


def _decode_strict(source: Mapping[str, Any], doc_id: str | None) -> PolicyRecord:
    try:
        stored = _StoredPolicy.model_validate(dict(source))
    except ValidationError as e:
        raise DocumentParseError(
            f"invalid policy document: {e.errors(include_url=False)}", doc_id=doc_id
        ) from e

    values = [getattr(stored, name) for name in FIELD_NAMES]
    rule: list[str] = []
    for index, value in enumerate(values):
        if value is None:
            trailing = [FIELD_NAMES[i] for i in range(index + 1, MAX_FIELDS) if values[i] is not None]
            if trailing:
                raise DocumentParseError(
                    f"field {FIELD_NAMES[index]} is missing but {', '.join(trailing)} present",
                    doc_id=doc_id,
                )
            break
        rule.append(value)

    if not rule:
        raise DocumentParseError("policy document has no rule fields", doc_id=doc_id)
    return PolicyRecord(ptype=stored.ptype, fields=tuple(rule))


def _decode_legacy(source: Mapping[str, Any], doc_id: str | None) -> PolicyRecord:
    ptype = source.get("ptype")
    if not isinstance(ptype, str):
        raise DocumentParseError("missing or invalid ptype", doc_id=doc_id)

    # Stops at the first missing or non-string field: v0,v2 without v1 is [v0].
    rule: list[str] = []
    for name in FIELD_NAMES:
        value = source.get(name)
        if not isinstance(value, str):
            break
        rule.append(value)

    if not rule:
        raise DocumentParseError("policy document has no rule fields", doc_id=doc_id)
    return PolicyRecord(ptype=ptype, fields=tuple(rule))


def decode_hit(hit: Any, *, legacy: bool = False) -> PolicyRecord:
    """Decode one search hit into a :class:`PolicyRecord`.

    Raises :class:`DocumentParseError` for anything that is not a usable
    policy document; callers skip such hits instead of failing the batch.
    """
    if not isinstance(hit, Mapping):
        raise DocumentParseError("search hit is not an object")
    doc_id = hit.get("_id")
    source = hit.get("_source")
    if not isinstance(source, Mapping):
        raise DocumentParseError("search hit has no _source", doc_id=doc_id)
    if legacy:
        return _decode_legacy(source, doc_id)
    return _decode_strict(source, doc_id)


__all__ = [
    "FIELD_NAMES",
    "INDEX_MAPPING",
    "MAX_FIELDS",
    "MIN_FIELDS",
    "POLICY_SECTIONS",
    "PolicyRecord",
    "decode_hit",
    "document_id",
    "section_for_ptype",
]
