"""Shared utility functions used by services and blueprints.

get_or_raise:    primary-key lookup that raises NotFoundError
parse_dmy:       DD/MM/YYYY -> date (None on bad input)
format_dmy:      date -> DD/MM/YYYY
missing_fields:  blueprint-side required-field check
"""
import logging
import re
from datetime import date

from sitetrack.core.exceptions import NotFoundError
from sitetrack.models import db

logger = logging.getLogger(__name__)

_DMY_RE = re.compile(r"^\s*(\d{1,2})/(\d{1,2})/(\d{4})\s*$")


def get_or_raise(model, pk, label=None):
    """Fetch a model instance by primary key or raise NotFoundError."""
    label = label or model.__name__
    obj = db.session.get(model, pk) if pk is not None else None
    if obj is None:
        raise NotFoundError(resource=label, resource_id=pk)
    return obj


def parse_dmy(value):
    """Parse a DD/MM/YYYY string to a date object.

    Returns None for empty, malformed, or impossible dates (e.g. 31/02/2025).
    Day and month may be one or two digits.
    """
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        return None
    m = _DMY_RE.match(value)
    if not m:
        return None
    day, month, year = (int(p) for p in m.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def format_dmy(value: date) -> str:
    return f"{value.day:02d}/{value.month:02d}/{value.year}"


def missing_fields(data: dict, *names: str) -> list[str]:
    """Names whose value is absent or blank in ``data``."""
    missing = []
    for name in names:
        value = data.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(name)
    return missing
