"""Compact payload format for timechunk sets: ``id1,id2,...;field1,field2,...``.

Producers encode one payload per ``postpone`` call; the worker decodes and unions
every payload in the drained buckets. Ids and fields must not contain either
separator (caller precondition, not checked here).
"""
from __future__ import annotations

from typing import Iterable, Optional

FALLBACK_FIELDS = "all"
FIELDS_IDS_SEPARATOR = ";"
IDS_SEPARATOR = ","


def encode(ids: Iterable[object], fields: Optional[Iterable[str]] = None) -> str:
    field_list = [str(f) for f in fields] if fields else []
    if not field_list:
        field_list = [FALLBACK_FIELDS]
    return FIELDS_IDS_SEPARATOR.join(
        [IDS_SEPARATOR.join(str(i) for i in ids), IDS_SEPARATOR.join(field_list)]
    )


def decode(payload: str | bytes) -> tuple[list[str], list[str]]:
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    ids_part, _, fields_part = payload.partition(FIELDS_IDS_SEPARATOR)
    ids = [i for i in ids_part.split(IDS_SEPARATOR) if i]
    fields = [f for f in fields_part.split(IDS_SEPARATOR) if f] or [FALLBACK_FIELDS]
    return ids, fields


def merge_payloads(payloads: Iterable[str | bytes]) -> tuple[list[str], Optional[list[str]]]:
    """Union ids and fields of many payloads.

    Ids keep first-seen order. Fields come back as ``None`` when any payload asked
    for all fields, meaning a full document reindex.
    """
    ids: dict[str, None] = {}
    fields: dict[str, None] = {}
    full = False
    for payload in payloads:
        payload_ids, payload_fields = decode(payload)
        ids.update(dict.fromkeys(payload_ids))
        if FALLBACK_FIELDS in payload_fields:
            full = True
        else:
            fields.update(dict.fromkeys(payload_fields))
    return list(ids), (None if full else list(fields))


__all__ = ["encode", "decode", "merge_payloads", "FALLBACK_FIELDS", "FIELDS_IDS_SEPARATOR", "IDS_SEPARATOR"]
