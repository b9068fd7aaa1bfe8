#!/usr/bin/env python3
"""
iCalendar VTODO helpers: task identifiers, subject decoding and
serialization of a single to-do record.
"""

import os
import re
from datetime import datetime, timezone
from typing import NamedTuple, Optional
from urllib.parse import unquote

PRODUCT_VERSION = 'undefined'

ZERO_TIMESTAMP = '00010101T000000Z'

VTODO_TEMPLATE = """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//Nextcloud Tasks v{product_version}
BEGIN:VTODO
CREATED;VALUE=DATE-TIME:{created}
DESCRIPTION:{description}
DTSTAMP;VALUE=DATE-TIME:{dtstamp}
LAST-MODIFIED;VALUE=DATE-TIME:{created}
PERCENT-COMPLETE:0
PRIORITY:0
SEQUENCE:6
STATUS:NEEDS-ACTION
SUMMARY:{summary}
UID:{uuid}
X-OC-HIDESUBTASKS:0
END:VTODO
END:VCALENDAR"""

ENCODED_WORD_RE = re.compile(r'^=\?[a-zA-Z0-9_\-]*\?.\?(.*)\?=')
QP_OCTET_RE = re.compile(r'=([A-F0-9][A-F0-9])')
FOLD_RE = re.compile(r'\r?\n(?=[ \t])')


class TodoRecord(NamedTuple):
    """Fields of one VTODO, ready for serialization."""
    uuid: str
    summary: str
    description: str
    dtstamp: Optional[datetime]
    created: datetime


def get_uuid() -> str:
    """
    Generate a random UUID-shaped identifier.

    128 bits from the OS random source, formatted as 8-4-4-4-12 lowercase
    hex groups. Version and variant bits are left random.
    """
    b = os.urandom(16).hex()
    return f"{b[0:8]}-{b[8:12]}-{b[12:16]}-{b[16:20]}-{b[20:]}"


def unfold_header(value: str) -> str:
    """Undo header folding and drop any stray line breaks."""
    value = FOLD_RE.sub('', value)
    return value.replace('\r', '').replace('\n', '')


def subject_decode(name: str) -> str:
    """
    Decode a subject that starts with a MIME encoded-word.

    This is a lazy decoder: only a token at the very start is handled, the
    charset and encoding letter are ignored and the payload is treated as
    quoted-printable. Anything else is returned unchanged.
    """
    new_name = ENCODED_WORD_RE.sub(r'\1', name, count=1)
    if new_name != name:
        new_name = QP_OCTET_RE.sub(r'%\1', new_name)
        new_name = unquote(new_name, encoding='utf-8', errors='replace')
    return new_name


def format_timestamp(dt: Optional[datetime]) -> str:
    """Format as an iCalendar UTC DATE-TIME, or the zero timestamp for None."""
    if dt is None:
        return ZERO_TIMESTAMP
    if dt.tzinfo is not None:
        try:
            dt = dt.astimezone(timezone.utc)
        except OverflowError:
            return ZERO_TIMESTAMP
    # strftime('%Y') does not zero-pad years below 1000 on every platform
    return (f"{dt.year:04d}{dt.month:02d}{dt.day:02d}"
            f"T{dt.hour:02d}{dt.minute:02d}{dt.second:02d}Z")


def compose_vtodo(todo: TodoRecord) -> str:
    """Render a TodoRecord into a VCALENDAR document with one VTODO."""
    return VTODO_TEMPLATE.format(
        product_version=PRODUCT_VERSION,
        created=format_timestamp(todo.created),
        description=todo.description,
        dtstamp=format_timestamp(todo.dtstamp),
        summary=todo.summary,
        uuid=todo.uuid,
    )
