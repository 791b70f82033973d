"""Utility functions for AIRPLOT."""

import json
import math
import re
from typing import Optional

from config import POLLUTANT_FILE_RULES, DEFAULT_POLLUTANT

_INT_RE = re.compile(r'[+-]?\d+', re.ASCII)
_FLOAT_RE = re.compile(r'[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?', re.ASCII)
_POLLUTANT_KEY_RE = re.compile(r'[\s._-]+')


def normalize_delim(d: Optional[str]) -> Optional[str]:
    """Normalize common delimiter tokens to actual characters."""
    if d is None:
        return None
    if d == '\\t':  # literal backslash t from shell
        return '\t'
    low = d.lower()
    mapping = {
        'tab': '\t',
        'comma': ',',
        'semicolon': ';',
        'pipe': '|',
        'space': ' ',
        'whitespace': ' ',
        'csv': ',',
        'tsv': '\t',
    }
    return mapping.get(low, d)


def parse_int(token) -> Optional[int]:
    """Strictly parse an integer field; None when the token is not a plain integer."""
    if token is None:
        return None
    s = str(token).strip()
    if not _INT_RE.fullmatch(s):
        return None
    return int(s)


def parse_float(token) -> Optional[float]:
    """Parse a plain decimal field; None for blanks, text, NaN, infinities and digit grouping."""
    if token is None:
        return None
    s = str(token).strip()
    if not _FLOAT_RE.fullmatch(s):
        return None
    val = float(s)
    if not math.isfinite(val):
        return None
    return val


def canonical_pollutant(name: Optional[str]) -> str:
    """Map user/file spellings (pm2.5, PM2_5, pm25, no2) to NO2, PM10 or PM2.5.

    Unrecognized names fall back to NO2, the way the file naming convention
    treats every pollutant that is not a particulate.
    """
    key = _POLLUTANT_KEY_RE.sub('', str(name or '')).upper()
    for canonical in POLLUTANT_FILE_RULES:
        if key == canonical.replace('.', ''):
            return canonical
    return DEFAULT_POLLUTANT


def display_pollutant(name: Optional[str]) -> str:
    """Pollutant name for labels and titles."""
    return canonical_pollutant(name)


def safe_slug(text: Optional[str]) -> str:
    """Generate a filename-safe slug (PM2.5 -> PM2_5)."""
    text = str(text or 'default')
    slug = ''.join(ch if (ch.isalnum() or ch in {'-', '_'}) else '_' for ch in text)
    slug = slug.strip('_') or 'default'
    return slug


def serialize_attrs(attrs) -> dict:
    """Safely serialize a dictionary of attributes to JSON-compatible dict."""
    if not isinstance(attrs, dict):
        return {}
    result = {}
    for key, value in attrs.items():
        safe_key = str(key)
        try:
            json.dumps(value)
            result[safe_key] = value
        except TypeError:
            result[safe_key] = repr(value)
    return result
