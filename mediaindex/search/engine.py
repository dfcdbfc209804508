"""Search engine: type-gated query building, bounded execution and saved searches."""

import logging
import time
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field

from mediaindex.config import SearchConfig
from mediaindex.database import MediaEntry, MediaKind, SavedSearch, Store
from mediaindex.errors import InvalidQuery, NotFound, ResultSetTooLarge
from mediaindex.scanner.state import ScanState

from .predicates import Predicate, compile_predicate, get_attribute

logger = logging.getLogger(__name__)

SORT_KEYS = {
    "path": "e.path",
    "title": "e.title COLLATE NOCASE",
    "size": "e.size",
    "creation_time": "e.created_at",
    "modification_time": "e.modified_at",
    "release_date": "v.release_date",
    "duration": "COALESCE(v.duration, a.duration)",
}

OVERFLOW_POLICIES = ("truncate", "refuse")


@dataclass(frozen=True)
class Query:
    """A validated query.

    ``media_types`` is the type filter after narrowing by each predicate's
    attribute; ``requested_types`` is what the caller asked for.
    """

    media_types: frozenset[MediaKind]
    requested_types: frozenset[MediaKind]
    predicates: tuple[Predicate, ...] = ()
    sort_by: str = "path"
    descending: bool = False


@dataclass
class SearchResult:
    entries: list[MediaEntry] = field(default_factory=list)
    total: int = 0
    truncated: bool = False

    def __iter__(self) -> Iterator[MediaEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


def _coerce_kinds(media_types: Iterable[MediaKind | str]) -> frozenset[MediaKind]:
    kinds = set()
    for media_type in media_types:
        if isinstance(media_type, MediaKind):
            kinds.add(media_type)
            continue
        try:
            kinds.add(MediaKind(str(media_type).lower()))
        except ValueError as e:
            raise InvalidQuery(f"Unknown media type: {media_type}") from e
    return frozenset(kinds)


def _type_names(kinds: Iterable[MediaKind]) -> list[str]:
    return sorted(k.value for k in kinds)


def order_clause(sort_by: str, descending: bool) -> str:
    """ORDER BY clause with NULLs last and ties broken by path."""
    direction = "DESC" if descending else "ASC"
    if sort_by == "path":
        return f"e.path {direction}"
    expr = SORT_KEYS[sort_by]
    bare = expr.replace(" COLLATE NOCASE", "")
    return f"{bare} IS NULL, {expr} {direction}, e.path ASC"


class SearchEngine:
    """Builds and runs queries against the store.

    Saving and deleting searches are writes and are refused while a scan
    is running.
    """

    def __init__(
        self,
        store: Store,
        scan_state: ScanState | None = None,
        config: SearchConfig | None = None,
    ):
        self.store = store
        self.scan_state = scan_state
        self.config = config or SearchConfig()
        if self.config.overflow not in OVERFLOW_POLICIES:
            raise ValueError(
                f"Unknown overflow policy: {self.config.overflow}. "
                f"Available: {list(OVERFLOW_POLICIES)}"
            )

    def build_query(
        self,
        media_types: Iterable[MediaKind | str],
        predicates: Sequence[Predicate] = (),
        sort_by: str = "path",
        descending: bool = False,
    ) -> Query:
        """Validate a query and narrow its type filter.

        Raises:
            InvalidQuery: no media type selected, a predicate is invalid or
                its attribute applies to none of the remaining types, or
                the sort key is unknown.
        """
        requested = _coerce_kinds(media_types)
        if not requested:
            raise InvalidQuery("no media type selected")

        narrowed = set(requested)
        for predicate in predicates:
            attribute = get_attribute(predicate.attribute)
            compile_predicate(predicate)
            remaining = narrowed & attribute.kinds
            if not remaining:
                raise InvalidQuery(
                    f"Attribute '{attribute.name}' applies to {_type_names(attribute.kinds)}, "
                    f"not to the selected media types {_type_names(narrowed)}",
                    attribute=attribute.name,
                )
            narrowed = remaining

        if sort_by not in SORT_KEYS:
            raise InvalidQuery(f"Cannot sort by {sort_by}. Available: {list(SORT_KEYS)}")

        return Query(
            media_types=frozenset(narrowed),
            requested_types=requested,
            predicates=tuple(predicates),
            sort_by=sort_by,
            descending=descending,
        )

    def compile(self, query: Query) -> tuple[str, list]:
        """WHERE clause and parameters for ``query``. Predicates combine with AND."""
        kinds = _type_names(query.media_types)
        clauses = [f"e.kind IN ({','.join('?' for _ in kinds)})"]
        params: list = list(kinds)
        for predicate in query.predicates:
            condition, args = compile_predicate(predicate)
            clauses.append(f"({condition})")
            params.extend(args)
        return " AND ".join(clauses), params

    def run(self, query: Query) -> SearchResult:
        """Execute ``query`` against the current store contents.

        Raises:
            ResultSetTooLarge: more matches than the cap with ``overflow="refuse"``.
        """
        where, params = self.compile(query)
        total = self.store.count(where, params)

        cap = self.config.result_cap
        limit = None
        truncated = False
        if total > cap:
            if self.config.overflow == "refuse":
                raise ResultSetTooLarge(total, cap)
            logger.warning(
                "Search truncated total=%d cap=%d types=%s predicates=%d",
                total,
                cap,
                _type_names(query.media_types),
                len(query.predicates),
            )
            limit = cap
            truncated = True

        entries = self.store.query(
            where, params, order_clause(query.sort_by, query.descending), limit
        )
        return SearchResult(entries=entries, total=total, truncated=truncated)

    def search(
        self,
        media_types: Iterable[MediaKind | str],
        predicates: Sequence[Predicate] = (),
        sort_by: str = "path",
        descending: bool = False,
    ) -> SearchResult:
        return self.run(self.build_query(media_types, predicates, sort_by, descending))

    # -- saved searches --------------------------------------------------

    def save(self, name: str, query: Query) -> int:
        self._ensure_writable("save a search")
        name = name.strip()
        if not name:
            raise InvalidQuery("Saved search name must not be empty")
        record = SavedSearch(
            id=None,
            name=name,
            media_types=_type_names(query.requested_types),
            predicates=[p.to_record() for p in query.predicates],
            sort_by=query.sort_by,
            descending=query.descending,
            created_at=time.time(),
        )
        search_id = self.store.insert_saved_search(record)
        logger.info("Saved search %r", name)
        return search_id

    def list_saved(self) -> list[SavedSearch]:
        return self.store.list_saved_searches()

    def get_saved(self, name: str) -> SavedSearch:
        saved = self.store.get_saved_search(name)
        if saved is None:
            raise NotFound(f"No saved search named {name!r}")
        return saved

    def load_saved(self, name: str) -> Query:
        """Rebuild and re-validate a saved query."""
        saved = self.get_saved(name)
        predicates = [Predicate.from_record(record) for record in saved.predicates]
        return self.build_query(saved.media_types, predicates, saved.sort_by, saved.descending)

    def delete_saved(self, name: str) -> bool:
        self._ensure_writable("delete a saved search")
        return self.store.delete_saved_search(name)

    def run_saved(self, name: str) -> SearchResult:
        """Re-execute a saved search against the current store state."""
        result = self.run(self.load_saved(name))
        if self.scan_state is not None and self.scan_state.active:
            logger.debug("Scan running, not recording last use of saved search %r", name)
        else:
            self.store.touch_saved_search(name)
        return result

    def _ensure_writable(self, operation: str) -> None:
        if self.scan_state is not None:
            self.scan_state.ensure_idle(operation)
