"""Bounding box index over target polygons."""

import logging
from typing import Any, Dict, Iterable, List

import shapely
import shapely.strtree

from reagg.records import Bounds, TargetRecord

logger = logging.getLogger(__name__)


class TargetIndex:
    """An STR tree of target polygons answering bounding box queries.

    Queries return target record identifiers of all targets whose envelopes
    intersect the given bounding box, which is a superset of the targets
    geometrically intersecting anything inside that box.
    """
    def __init__(self, targets: Iterable[TargetRecord]):
        self.targets: List[TargetRecord] = list(targets)
        self._check_unique_ids()
        self._tree = shapely.strtree.STRtree([target.geometry for target in self.targets])
        logger.debug('str tree built over %d targets', len(self.targets))

    def _check_unique_ids(self) -> None:
        seen = set()
        for target in self.targets:
            if target.id in seen:
                raise ValueError(f'duplicate target id {target.id!r}')
            seen.add(target.id)

    def query(self, bounds: Bounds) -> List[Any]:
        """Return identifiers of targets whose envelope intersects the bounds."""
        hits = self._tree.query(shapely.box(*bounds))
        return [self.targets[i].id for i in sorted(hits)]

    def by_id(self) -> Dict[Any, TargetRecord]:
        return {target.id: target for target in self.targets}

    def __len__(self):
        return len(self.targets)
