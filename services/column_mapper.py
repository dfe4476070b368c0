"""
Column mapper: proposes which target field each spreadsheet header feeds.

The auto-detection is a greedy, order-sensitive heuristic, not a global
optimum. Headers are visited in file order and fields in catalog order;
for each header the first matching field that no earlier header claimed
wins. Reordering the headers can therefore change the proposal, and a
generic alias ("name") can win over a more specific one ("equipment name")
declared later.
"""

from typing import Iterable, Iterator, Optional, Union
import structlog

from exceptions import MappingConflictError, MappingFrozenError, UnknownColumnError
from models.item_fields import FIELD_ALIASES, SKIP, TargetFieldKey, parse_field_key
from utils.text_utils import normalize_header

logger = structlog.get_logger(__name__)

MappingTarget = Union[TargetFieldKey, str]  # TargetFieldKey or SKIP

AliasTable = tuple[tuple[TargetFieldKey, tuple[str, ...]], ...]


class ColumnMapping:
    """
    Ordered header -> target field assignment.

    At most one header maps to a given field. Editable during the mapping
    step; frozen once an import is committed.
    """

    def __init__(self, headers: Iterable[str]):
        self._targets: dict[str, MappingTarget] = {h: SKIP for h in headers}
        self._frozen = False

    # ===================
    # READ
    # ===================

    @property
    def headers(self) -> list[str]:
        return list(self._targets)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def target_of(self, header: str) -> MappingTarget:
        return self._targets.get(header, SKIP)

    def header_for(self, field: TargetFieldKey) -> Optional[str]:
        """Header mapped to a field, or None when the field is unmapped."""
        for header, target in self._targets.items():
            if target == field:
                return header
        return None

    def is_mapped(self, field: TargetFieldKey) -> bool:
        return self.header_for(field) is not None

    def mapped_items(self) -> Iterator[tuple[str, TargetFieldKey]]:
        """(header, field) pairs in header order, skipped headers excluded."""
        for header, target in self._targets.items():
            if isinstance(target, TargetFieldKey):
                yield header, target

    def mapped_count(self) -> int:
        return sum(1 for _ in self.mapped_items())

    def to_dict(self) -> dict[str, str]:
        return {
            header: target.value if isinstance(target, TargetFieldKey) else SKIP
            for header, target in self._targets.items()
        }

    # ===================
    # WRITE
    # ===================

    def assign(self, header: str, target: MappingTarget) -> None:
        """
        Point a header at a field (or SKIP).

        Raises:
            UnknownColumnError: Header is not in the file
            MappingConflictError: Another header already feeds the field
            MappingFrozenError: Mapping was frozen
        """
        if self._frozen:
            raise MappingFrozenError()
        if header not in self._targets:
            raise UnknownColumnError(header)

        if isinstance(target, TargetFieldKey):
            existing = self.header_for(target)
            if existing is not None and existing != header:
                raise MappingConflictError(target.value, header, existing)
            self._targets[header] = target
        else:
            self._targets[header] = SKIP

    def replace(self, assignments: dict[str, str]) -> None:
        """
        Replace the whole mapping from raw strings ("name", "skip", ...).

        Unknown field names are treated as "skip". Headers not listed keep
        no mapping. Applied atomically: on conflict nothing changes.
        """
        if self._frozen:
            raise MappingFrozenError()

        staged = ColumnMapping(self.headers)
        for header, raw_target in assignments.items():
            field = parse_field_key(raw_target) if raw_target else None
            staged.assign(header, field if field is not None else SKIP)

        self._targets = staged._targets
        logger.info("column_mapping_replaced", mapped=self.mapped_count())

    def freeze(self) -> None:
        self._frozen = True

    def copy(self) -> "ColumnMapping":
        """Unfrozen copy with the same assignments."""
        clone = ColumnMapping(self.headers)
        clone._targets = dict(self._targets)
        return clone

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ColumnMapping):
            return NotImplemented
        return list(self._targets.items()) == list(other._targets.items())

    def __repr__(self) -> str:
        return f"ColumnMapping({self.to_dict()!r})"


def alias_matches(normalized_header: str, aliases: Iterable[str]) -> bool:
    """Header equals an alias or contains it as a substring."""
    return any(normalized_header == alias or alias in normalized_header for alias in aliases)


def auto_detect_mapping(
    headers: Iterable[str],
    aliases: AliasTable = FIELD_ALIASES,
) -> ColumnMapping:
    """
    Propose a mapping for raw spreadsheet headers.

    For each header (file order), fields are tried in alias-table order;
    the first field whose aliases match and that is still unclaimed is
    assigned. Headers matching nothing stay "skip".

    Args:
        headers: Raw header strings as they appear in the file
        aliases: Ordered (field, aliases) pairs

    Returns:
        ColumnMapping with no field assigned twice
    """
    headers = list(headers)
    mapping = ColumnMapping(headers)
    claimed: set[TargetFieldKey] = set()

    for header in headers:
        normalized = normalize_header(header)
        if not normalized:
            continue
        for field, field_aliases in aliases:
            if field in claimed:
                continue
            if alias_matches(normalized, field_aliases):
                mapping.assign(header, field)
                claimed.add(field)
                break

    logger.info(
        "column_mapping_detected",
        header_count=len(headers),
        mapped=mapping.mapped_count(),
    )

    return mapping
