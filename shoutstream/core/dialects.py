"""
Per-dialect extraction of song title and listener count.

Each server family has its own parser class. Parsers never raise: every
field lookup is isolated, and a lookup that blows up on an unexpected shape
counts as the field being absent.
"""

import html
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .logger import get_logger
from .models import ServerDialect, StreamMetadata

logger = get_logger('dialects')

TITLE_KEYS = ('songtitle', 'title', 'server_name')
LISTENER_KEYS = ('currentlisteners', 'listeners')

_LOOKUP_ERRORS = (AttributeError, KeyError, IndexError, TypeError, ValueError)


@dataclass(frozen=True)
class ParsedFields:
    """Raw extraction result; None means the field was absent"""

    title: Optional[str] = None
    listeners: Optional[str] = None

    @property
    def has_title(self) -> bool:
        return self.title is not None

    def to_metadata(self) -> StreamMetadata:
        return StreamMetadata(song_title=self.title or '', listeners=self.listeners)


ABSENT = ParsedFields()


def _safe(lookup: Callable[[], Any]) -> Any:
    try:
        return lookup()
    except _LOOKUP_ERRORS as e:
        logger.debug("Field lookup failed", error=str(e))
        return None


def as_title(value: Any) -> Optional[str]:
    """Text value usable as a title, or None when empty or not scalar"""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def as_markup_title(value: Any) -> Optional[str]:
    """Title scraped from XML or HTML, with character references decoded"""
    if isinstance(value, str):
        value = html.unescape(value)
    return as_title(value)


def as_listeners(value: Any) -> Optional[str]:
    """Listener count carried as a string; 0 is a count, not an absence"""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value.strip() or None
    return None


def first_present(*lookups: Callable[[], Any], convert: Callable[[Any], Optional[str]]) -> Optional[str]:
    """Run lookups in order and return the first converted non-missing value"""
    for lookup in lookups:
        value = convert(_safe(lookup))
        if value is not None:
            return value
    return None


def _first_entry(value: Any) -> Optional[Dict[str, Any]]:
    """A dict, or the first element of a list when that is a dict"""
    if isinstance(value, list):
        value = value[0] if value else None
    return value if isinstance(value, dict) else None


def _flat_fields(data: Any, fallback: Any = None) -> ParsedFields:
    """Shoutcast-style flat object, optionally backed by a second object"""
    sources = [s for s in (data, fallback) if isinstance(s, dict)]
    title = first_present(
        *(lambda s=s, k=k: s.get(k) for s in sources for k in TITLE_KEYS),
        convert=as_title,
    )
    listeners = first_present(
        *(lambda s=s, k=k: s.get(k) for s in sources for k in LISTENER_KEYS),
        convert=as_listeners,
    )
    return ParsedFields(title, listeners)


class DialectParser:
    """Base class: JSON payloads and text bodies for one server family"""

    dialect = ServerDialect.UNKNOWN

    def parse_json(self, payload: Any) -> ParsedFields:
        return ABSENT

    def parse_text(self, text: str) -> ParsedFields:
        return ABSENT


class IcecastParser(DialectParser):
    """Icecast ``status-json.xsl``"""

    dialect = ServerDialect.ICECAST

    def parse_json(self, payload: Any) -> ParsedFields:
        if not isinstance(payload, dict):
            return ABSENT
        stats = payload.get('icestats', payload)
        if not isinstance(stats, dict):
            return ABSENT
        source = _first_entry(stats.get('source')) or {}

        title = first_present(
            lambda: source.get('title'),
            lambda: source.get('server_name'),
            lambda: stats.get('server_name'),
            lambda: stats.get('title'),
            convert=as_title,
        )
        listeners = first_present(
            lambda: source.get('listeners'),
            lambda: stats.get('listeners'),
            convert=as_listeners,
        )
        return ParsedFields(title, listeners)


class ShoutcastV1Parser(DialectParser):
    """Shoutcast v1 ``/stats?sid=1&json=1`` and the scraped index page"""

    dialect = ServerDialect.SHOUTCAST_V1

    def parse_json(self, payload: Any) -> ParsedFields:
        return _flat_fields(payload)

    def parse_text(self, text: str) -> ParsedFields:
        return scrape_html(text)


class ShoutcastV2Parser(DialectParser):
    """Shoutcast v2 ``/stats`` (XML) and ``/api/statistics`` (JSON)"""

    dialect = ServerDialect.SHOUTCAST_V2

    def parse_json(self, payload: Any) -> ParsedFields:
        if not isinstance(payload, dict):
            return ABSENT
        stats = payload.get('statistics')
        if not isinstance(stats, dict):
            return _flat_fields(payload)
        streams = stats.get('streams')
        if streams is None:
            streams = stats.get('stream')
        return _flat_fields(_first_entry(streams), stats)

    def parse_text(self, text: str) -> ParsedFields:
        fields = parse_stats_xml(text)
        if fields.has_title:
            return fields
        scraped = scrape_html(text)
        if scraped.has_title:
            return ParsedFields(scraped.title, scraped.listeners or fields.listeners)
        return fields


PARSERS: Dict[ServerDialect, DialectParser] = {
    ServerDialect.ICECAST: IcecastParser(),
    ServerDialect.SHOUTCAST_V1: ShoutcastV1Parser(),
    ServerDialect.SHOUTCAST_V2: ShoutcastV2Parser(),
}


def _tag(name: str) -> 're.Pattern[str]':
    return re.compile(rf'<{name}>\s*(?:<!\[CDATA\[)?(.*?)(?:\]\]>)?\s*</{name}>', re.I | re.S)


_SONGTITLE_TAG = _tag('SONGTITLE')
_SERVERTITLE_TAG = _tag('SERVERTITLE')
_LISTENERS_TAG = _tag('CURRENTLISTENERS')


def _match(pattern: 're.Pattern[str]', text: str) -> Optional[str]:
    match = pattern.search(text)
    return match.group(1) if match else None


def parse_stats_xml(text: str) -> ParsedFields:
    """Shoutcast v2 XML status document"""
    title = first_present(
        lambda: _match(_SONGTITLE_TAG, text),
        lambda: _match(_SERVERTITLE_TAG, text),
        convert=as_markup_title,
    )
    listeners = first_present(lambda: _match(_LISTENERS_TAG, text), convert=as_listeners)
    return ParsedFields(title, listeners)


_BODY = re.compile(r'<body[^>]*>(.*?)</body>', re.I | re.S)
_CURRENT_SONG = re.compile(r'Current Song:\s*(?:</?[a-z]+[^>]*>\s*)*([^<\n]+)', re.I)
_LISTENERS_LABEL = re.compile(r'Listeners:\s*(?:</?[a-z]+[^>]*>\s*)*(\d+)', re.I)
_SONG_SPAN = re.compile(r'<span[^>]*class="[^"]*song[^"]*"[^>]*>([^<]+)</span>', re.I)
_LISTENERS_CELL = re.compile(r'<td[^>]*>\s*(\d+)\s*</td>\s*<td[^>]*>\s*Listeners', re.I)


def _csv_fields(text: str) -> ParsedFields:
    """``current,unique,peak,max,bitrate,genre,title`` bodies (7.html)"""
    match = _BODY.search(text)
    content = match.group(1) if match else text
    content = content.strip()
    if '<' in content:
        return ABSENT
    parts = content.split(',')
    if len(parts) < 7:
        return ABSENT
    title = as_markup_title(','.join(parts[6:]))
    if title is None:
        return ABSENT
    return ParsedFields(title, as_listeners(parts[0]))


def scrape_html(text: str) -> ParsedFields:
    """Scrape a status page: CSV body, labelled fields, then alternate markup"""
    csv = _safe(lambda: _csv_fields(text)) or ABSENT
    if csv.has_title:
        return csv

    title = first_present(
        lambda: _match(_CURRENT_SONG, text),
        lambda: _match(_SONG_SPAN, text),
        convert=as_markup_title,
    )
    listeners = first_present(
        lambda: _match(_LISTENERS_LABEL, text),
        lambda: _match(_LISTENERS_CELL, text),
        convert=as_listeners,
    )
    return ParsedFields(title, listeners)
