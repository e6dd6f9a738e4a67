"""Intersection areas between source and candidate target polygons."""

from typing import Optional

import shapely.prepared

from reagg.records import Bounds, SourceRecord, TargetRecord


def envelopes_intersect(a: Bounds, b: Bounds) -> bool:
    return a[0] <= b[2] and b[0] <= a[2] and a[1] <= b[3] and b[1] <= a[3]


class OverlapResolver:
    """Compute the area shared by a source polygon and a target polygon.

    The exact intersection is only computed when the polygons actually
    intersect and neither contains the other. Callers visiting many targets
    for one source should :meth:`prepare` the source once and pass the result
    along. The resolver holds no per-call state and can be shared by threads.

    :param min_area: Overlaps not exceeding this area are reported as zero,
        which suppresses contributions from slivers produced by shared
        boundaries that are not exactly coincident.
    """
    def __init__(self, min_area: float = 0.):
        self.min_area = min_area

    def prepare(self, source: SourceRecord) -> shapely.prepared.PreparedGeometry:
        return shapely.prepared.prep(source.geometry)

    def intersection_area(self,
                          source: SourceRecord,
                          target: TargetRecord,
                          prepared: Optional[shapely.prepared.PreparedGeometry] = None,
                          ) -> float:
        if not envelopes_intersect(source.bounds, target.bounds):
            return 0.
        if prepared is None:
            prepared = self.prepare(source)
        if not prepared.intersects(target.geometry):
            return 0.
        if prepared.contains(target.geometry):
            area = target.geometry.area
        elif target.geometry.contains(source.geometry):
            area = source.area()
        else:
            area = source.geometry.intersection(target.geometry).area
        return area if area > self.min_area else 0.
