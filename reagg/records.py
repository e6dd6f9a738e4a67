"""In-memory polygon records exchanged between layer I/O and the engine."""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from reagg.core import AnyPolygon

Bounds = Tuple[float, float, float, float]


class SourceRecord:
    """A source polygon with its read-only attribute values."""

    def __init__(self, id: Any, geometry: AnyPolygon, fields: Mapping[str, float]):
        self.id = id
        self.geometry = geometry
        self.fields = dict(fields)

    def area(self) -> float:
        return self.geometry.area

    @property
    def bounds(self) -> Bounds:
        return self.geometry.bounds

    def __repr__(self):
        return f'<SourceRecord {self.id!r}>'


class TargetRecord:
    """A target polygon with mutable attribute accumulators."""

    def __init__(self,
                 id: Any,
                 geometry: AnyPolygon,
                 fields: Optional[Mapping[str, float]] = None,
                 ):
        self.id = id
        self.geometry = geometry
        self.fields: Dict[str, float] = dict(fields) if fields else {}

    @property
    def bounds(self) -> Bounds:
        return self.geometry.bounds

    def reset(self, field_names: Iterable[str]) -> None:
        """Zero the accumulators of all given fields."""
        for name in field_names:
            self.fields[name] = 0.

    def __repr__(self):
        return f'<TargetRecord {self.id!r}>'


def schema_of(records: Iterable[SourceRecord]) -> List[str]:
    """Return the ordered union of field names over the given records."""
    schema = {}
    for record in records:
        for name in record.fields:
            schema.setdefault(name, None)
    return list(schema)
