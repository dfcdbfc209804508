"""Searchable attributes, predicates and their compilation to SQL.

Each attribute declares its value type, the media kinds it applies to and
the SQL expression it reads. Multi-valued attributes (directors, actors,
stream languages, tags) compile to an ``EXISTS`` subquery.

Expressions refer to the aliases of ``mediaindex.database.store.SEARCH_FROM``:
``e`` entries, ``v`` video, ``a`` audio, ``i`` image, ``c`` collections.
"""

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any

from mediaindex.database.models import MediaKind
from mediaindex.database.store import like_escape
from mediaindex.errors import InvalidQuery


class Operator(Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    RANGE = "range"


class ValueType(Enum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    TIMESTAMP = "timestamp"
    TAG = "tag"


OPERATORS_BY_TYPE = {
    ValueType.TEXT: {Operator.EQUALS, Operator.CONTAINS},
    ValueType.NUMBER: {Operator.EQUALS, Operator.RANGE},
    ValueType.DATE: {Operator.EQUALS, Operator.RANGE},
    ValueType.TIMESTAMP: {Operator.EQUALS, Operator.RANGE},
    ValueType.TAG: {Operator.EQUALS},
}

ALL_KINDS = frozenset(MediaKind)
VIDEO = frozenset({MediaKind.VIDEO})
AUDIO = frozenset({MediaKind.AUDIO})
IMAGE = frozenset({MediaKind.IMAGE})


@dataclass(frozen=True)
class Attribute:
    name: str
    value_type: ValueType
    kinds: frozenset[MediaKind]
    expr: str
    # EXISTS template for multi-valued attributes; {cond} is the condition on expr
    exists: str | None = None

    @property
    def operators(self) -> set[Operator]:
        return OPERATORS_BY_TYPE[self.value_type]


def _people(role: str) -> str:
    return (
        "EXISTS (SELECT 1 FROM video_people p WHERE p.entry_id = e.id "
        f"AND p.role = '{role}' AND {{cond}})"
    )


def _languages(stream: str) -> str:
    return (
        "EXISTS (SELECT 1 FROM video_languages l WHERE l.entry_id = e.id "
        f"AND l.stream = '{stream}' AND {{cond}})"
    )


_ATTRIBUTE_LIST = [
    # Common
    Attribute("filepath", ValueType.TEXT, ALL_KINDS, "e.path"),
    Attribute("title", ValueType.TEXT, ALL_KINDS, "e.title"),
    Attribute("description", ValueType.TEXT, ALL_KINDS, "e.description"),
    Attribute("size", ValueType.NUMBER, ALL_KINDS, "e.size"),
    Attribute("creation_time", ValueType.TIMESTAMP, ALL_KINDS, "e.created_at"),
    Attribute("modification_time", ValueType.TIMESTAMP, ALL_KINDS, "e.modified_at"),
    Attribute(
        "tag",
        ValueType.TAG,
        ALL_KINDS,
        "t.name",
        "EXISTS (SELECT 1 FROM tag_assignments ta JOIN tags t ON t.id = ta.tag_id "
        "WHERE ta.entry_id = e.id AND {cond})",
    ),
    Attribute(
        "tag_id",
        ValueType.TAG,
        ALL_KINDS,
        "ta.tag_id",
        "EXISTS (SELECT 1 FROM tag_assignments ta WHERE ta.entry_id = e.id AND {cond})",
    ),
    # Video
    Attribute("director", ValueType.TEXT, VIDEO, "p.name", _people("director")),
    Attribute("actor", ValueType.TEXT, VIDEO, "p.name", _people("actor")),
    Attribute("release_date", ValueType.DATE, VIDEO, "v.release_date"),
    Attribute("audio_language", ValueType.TEXT, VIDEO, "l.language", _languages("audio")),
    Attribute("subtitle_language", ValueType.TEXT, VIDEO, "l.language", _languages("subtitle")),
    Attribute("show", ValueType.TEXT, VIDEO, "c.show_title"),
    Attribute("season", ValueType.NUMBER, VIDEO, "e.season_index"),
    Attribute("episode", ValueType.NUMBER, VIDEO, "e.episode_index"),
    Attribute("frame_rate", ValueType.NUMBER, VIDEO, "v.frame_rate"),
    # Shared by several kinds
    Attribute("width", ValueType.NUMBER, VIDEO | IMAGE, "COALESCE(v.width, i.width)"),
    Attribute("height", ValueType.NUMBER, VIDEO | IMAGE, "COALESCE(v.height, i.height)"),
    Attribute("duration", ValueType.NUMBER, VIDEO | AUDIO, "COALESCE(v.duration, a.duration)"),
    # Audio
    Attribute("artist", ValueType.TEXT, AUDIO, "a.artist"),
    Attribute("album_artist", ValueType.TEXT, AUDIO, "a.album_artist"),
    Attribute("composer", ValueType.TEXT, AUDIO, "a.composer"),
    Attribute("album", ValueType.TEXT, AUDIO, "a.album"),
    Attribute("genre", ValueType.TEXT, AUDIO, "a.genre"),
    Attribute("track", ValueType.NUMBER, AUDIO, "a.track_index"),
    # Image
    Attribute("taken_time", ValueType.TIMESTAMP, IMAGE, "i.taken_at"),
    Attribute("lens_model", ValueType.TEXT, IMAGE, "i.lens_model"),
    Attribute("focal_length", ValueType.NUMBER, IMAGE, "i.focal_length"),
    Attribute("exposure_time", ValueType.NUMBER, IMAGE, "i.exposure_time"),
    Attribute("f_number", ValueType.NUMBER, IMAGE, "i.f_number"),
    Attribute("gps_latitude", ValueType.NUMBER, IMAGE, "i.gps_latitude"),
    Attribute("gps_longitude", ValueType.NUMBER, IMAGE, "i.gps_longitude"),
    Attribute("gps_altitude", ValueType.NUMBER, IMAGE, "i.gps_altitude"),
]

ATTRIBUTES: dict[str, Attribute] = {a.name: a for a in _ATTRIBUTE_LIST}


def get_attribute(name: str) -> Attribute:
    if name not in ATTRIBUTES:
        raise InvalidQuery(
            f"Unknown attribute: {name}. Available: {sorted(ATTRIBUTES)}", attribute=name
        )
    return ATTRIBUTES[name]


@dataclass(frozen=True)
class Predicate:
    """One ``(attribute, operator, operand)`` filter.

    ``value`` is used by Equals and Contains; ``low``/``high`` by Range,
    where either bound may be ``None`` for an open end.
    """

    attribute: str
    operator: Operator
    value: Any = None
    low: Any = None
    high: Any = None

    @classmethod
    def equals(cls, attribute: str, value: Any) -> "Predicate":
        return cls(attribute, Operator.EQUALS, value=value)

    @classmethod
    def contains(cls, attribute: str, value: str) -> "Predicate":
        return cls(attribute, Operator.CONTAINS, value=value)

    @classmethod
    def range(cls, attribute: str, low: Any = None, high: Any = None) -> "Predicate":
        return cls(attribute, Operator.RANGE, low=low, high=high)

    def to_record(self) -> dict:
        """JSON-safe form used by saved searches."""
        record: dict[str, Any] = {"attribute": self.attribute, "operator": self.operator.value}
        if self.operator == Operator.RANGE:
            record["low"] = _json_value(self.low)
            record["high"] = _json_value(self.high)
        else:
            record["value"] = _json_value(self.value)
        return record

    @classmethod
    def from_record(cls, record: dict) -> "Predicate":
        try:
            operator = Operator(record["operator"])
            attribute = record["attribute"]
        except (KeyError, ValueError) as e:
            raise InvalidQuery(f"Malformed stored predicate: {record!r}") from e
        return cls(
            attribute,
            operator,
            value=record.get("value"),
            low=record.get("low"),
            high=record.get("high"),
        )


def _json_value(value: Any) -> Any:
    if isinstance(value, date | datetime):
        return value.isoformat()
    return value


# -- operand coercion ------------------------------------------------------

_YEAR_RE = re.compile(r"^\d{4}$")
_MONTH_RE = re.compile(r"^(\d{4})-(\d{1,2})$")
_NUMBER_RE = re.compile(r"^-?\d+(?:\.\d+)?$")


def date_span(value: Any, attribute: str) -> tuple[date, date]:
    """First and last day covered by a year, month or day operand."""
    try:
        if isinstance(value, datetime):
            return value.date(), value.date()
        if isinstance(value, date):
            return value, value
        if isinstance(value, int) and not isinstance(value, bool):
            return date(value, 1, 1), date(value, 12, 31)
        if isinstance(value, str):
            text = value.strip()
            if _YEAR_RE.match(text):
                year = int(text)
                return date(year, 1, 1), date(year, 12, 31)
            match = _MONTH_RE.match(text)
            if match:
                year, month = int(match.group(1)), int(match.group(2))
                last = calendar.monthrange(year, month)[1]
                return date(year, month, 1), date(year, month, last)
            day = date.fromisoformat(text[:10])
            return day, day
    except ValueError as e:
        raise InvalidQuery(f"Invalid date for {attribute}: {value!r}", attribute=attribute) from e
    raise InvalidQuery(f"Invalid date for {attribute}: {value!r}", attribute=attribute)


def _raw_timestamp(value: Any) -> float | None:
    """Unix time for operands that are instants rather than calendar spans."""
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        return value
    if isinstance(value, int) and value > 9999:
        return float(value)
    if isinstance(value, str) and _NUMBER_RE.match(value.strip()):
        number = float(value)
        return number if number > 9999 else None
    return None


def _timestamp_bounds(value: Any, attribute: str) -> tuple[float, float, bool]:
    """``(start, end, end_inclusive)`` in unix time for a timestamp operand."""
    raw = _raw_timestamp(value)
    if raw is not None:
        return raw, raw, True
    first, last = date_span(value, attribute)
    start = datetime.combine(first, time.min).timestamp()
    end = datetime.combine(last + timedelta(days=1), time.min).timestamp()
    return start, end, False


def _number(value: Any, attribute: str) -> float:
    if isinstance(value, bool):
        raise InvalidQuery(f"Invalid number for {attribute}: {value!r}", attribute=attribute)
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise InvalidQuery(
            f"Invalid number for {attribute}: {value!r}", attribute=attribute
        ) from e


def _text(value: Any, attribute: str) -> str:
    if value is None or not str(value).strip():
        raise InvalidQuery(f"Empty text operand for {attribute}", attribute=attribute)
    return str(value).strip()


# -- compilation -----------------------------------------------------------


def _compile_condition(attribute: Attribute, predicate: Predicate) -> tuple[str, list]:
    expr = attribute.expr
    name = attribute.name
    op = predicate.operator
    vt = attribute.value_type

    if op == Operator.CONTAINS:
        pattern = f"%{like_escape(_text(predicate.value, name))}%"
        return f"{expr} LIKE ? ESCAPE '\\'", [pattern]

    if op == Operator.EQUALS:
        if vt == ValueType.TEXT:
            return f"{expr} = ? COLLATE NOCASE", [_text(predicate.value, name)]
        if vt == ValueType.TAG:
            if name == "tag_id":
                return f"{expr} = ?", [int(_number(predicate.value, name))]
            return f"{expr} = ? COLLATE NOCASE", [_text(predicate.value, name)]
        if vt == ValueType.NUMBER:
            return f"{expr} = ?", [_number(predicate.value, name)]
        if vt == ValueType.DATE:
            first, last = date_span(predicate.value, name)
            return f"{expr} BETWEEN ? AND ?", [first.isoformat(), last.isoformat()]
        start, end, inclusive = _timestamp_bounds(predicate.value, name)
        if start == end:
            return f"{expr} = ?", [start]
        return f"{expr} >= ? AND {expr} {'<=' if inclusive else '<'} ?", [start, end]

    # Range
    if predicate.low is None and predicate.high is None:
        raise InvalidQuery(f"Range on {name} needs at least one bound", attribute=name)

    parts: list[str] = []
    params: list = []
    if vt == ValueType.NUMBER:
        low = _number(predicate.low, name) if predicate.low is not None else None
        high = _number(predicate.high, name) if predicate.high is not None else None
        if low is not None:
            parts.append(f"{expr} >= ?")
            params.append(low)
        if high is not None:
            parts.append(f"{expr} <= ?")
            params.append(high)
        if low is not None and high is not None and low > high:
            raise InvalidQuery(f"Range on {name} has min above max", attribute=name)
    elif vt == ValueType.DATE:
        low = date_span(predicate.low, name)[0] if predicate.low is not None else None
        high = date_span(predicate.high, name)[1] if predicate.high is not None else None
        if low is not None:
            parts.append(f"{expr} >= ?")
            params.append(low.isoformat())
        if high is not None:
            parts.append(f"{expr} <= ?")
            params.append(high.isoformat())
        if low is not None and high is not None and low > high:
            raise InvalidQuery(f"Range on {name} has min above max", attribute=name)
    else:
        low_ts = _timestamp_bounds(predicate.low, name)[0] if predicate.low is not None else None
        if low_ts is not None:
            parts.append(f"{expr} >= ?")
            params.append(low_ts)
        if predicate.high is not None:
            _, high_ts, inclusive = _timestamp_bounds(predicate.high, name)
            parts.append(f"{expr} {'<=' if inclusive else '<'} ?")
            params.append(high_ts)
            if low_ts is not None and low_ts > high_ts:
                raise InvalidQuery(f"Range on {name} has min above max", attribute=name)
    return " AND ".join(parts), params


def compile_predicate(predicate: Predicate) -> tuple[str, list]:
    """Validate a predicate and compile it to a SQL condition with parameters.

    Raises:
        InvalidQuery: unknown attribute, operator not valid for the
            attribute's type, or a malformed operand.
    """
    attribute = get_attribute(predicate.attribute)
    if predicate.operator not in attribute.operators:
        allowed = sorted(o.value for o in attribute.operators)
        raise InvalidQuery(
            f"Operator '{predicate.operator.value}' not valid for "
            f"{attribute.value_type.value} attribute '{attribute.name}'. Use one of: {allowed}",
            attribute=attribute.name,
        )

    condition, params = _compile_condition(attribute, predicate)
    if attribute.exists:
        return attribute.exists.format(cond=condition), params
    return condition, params
