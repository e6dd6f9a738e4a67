"""Areal interpolation of source polygon attributes onto target polygons.

The run has two strictly ordered phases. Accumulation visits every source
record, finds the targets it overlaps and adds its weighted contributions to
their field accumulators. Normalization then turns the accumulated
``value * denominator`` sums of weighted-average fields into averages by
dividing them by the accumulated denominators.
"""

import logging
import concurrent.futures
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from reagg.errors import DegenerateGeometry, MissingField, PhaseError, UndefinedNormalization
from reagg.index import TargetIndex
from reagg.overlap import OverlapResolver
from reagg.policy import MISSING_SKIP, WeightingPolicy
from reagg.records import SourceRecord, TargetRecord, schema_of

logger = logging.getLogger(__name__)

PROGRESS_STEP: int = 1000

Contributions = List[Tuple[Any, Dict[str, float]]]


class InterpolationReport:
    """Summary of an interpolation run and the problems met along the way."""

    def __init__(self):
        self.n_sources = 0
        self.n_overlaps = 0
        self.skipped: List[MissingField] = []
        self.undefined: List[UndefinedNormalization] = []

    def __repr__(self):
        return (
            f'<InterpolationReport {self.n_sources} sources, {self.n_overlaps} overlaps,'
            f' {len(self.skipped)} skipped, {len(self.undefined)} undefined>'
        )


class Interpolator:
    """Areal interpolation engine.

    :param policy: Weighting policy deciding how each field is distributed.
    :param resolver: Overlap resolver; a default one is created if omitted.
    :param workers: Number of threads computing source record contributions.
        Accumulators are only ever written by the calling thread.
    """
    ACCUMULATING = 'accumulating'
    NORMALIZED = 'normalized'

    def __init__(self,
                 policy: WeightingPolicy,
                 resolver: Optional[OverlapResolver] = None,
                 workers: int = 1,
                 ):
        if workers < 1:
            raise ValueError(f'number of workers must be positive, got {workers}')
        self.policy = policy
        self.resolver = resolver if resolver is not None else OverlapResolver()
        self.workers = workers
        self.report = InterpolationReport()
        self.phase = None
        self._targets: Dict[Any, TargetRecord] = {}
        self._schema: List[str] = []

    def accumulate(self,
                   sources: Iterable[SourceRecord],
                   index: TargetIndex,
                   ) -> None:
        """Add contributions of all given source records to the indexed targets.

        May be called repeatedly with further source records until
        :meth:`normalize` is called.
        """
        if self.phase == self.NORMALIZED:
            raise PhaseError('cannot accumulate into targets that were already normalized')
        sources = list(sources)
        # checked before anything is written into the targets
        for source in sources:
            source_area = source.area()
            if not source_area > 0:
                raise DegenerateGeometry(source.id, source_area)
        schema = schema_of(sources)
        self.policy = self.policy.validate(schema)
        if self.policy.missing != MISSING_SKIP:
            for source in sources:
                for field in self.policy.required_fields:
                    if field not in source.fields:
                        raise MissingField(source.id, field)
        if self.phase is None:
            self._targets = index.by_id()
            self.phase = self.ACCUMULATING
        elif index.by_id().keys() != self._targets.keys():
            raise PhaseError('accumulation must continue over the same targets')
        new_fields = [name for name in schema if name not in self._schema]
        for target in self._targets.values():
            target.reset(new_fields)
        self._schema.extend(new_fields)
        logger.debug('accumulating %d source records into %d targets', len(sources), len(index))
        for i, outcome in enumerate(self._iter_contributions(sources, index)):
            if isinstance(outcome, MissingField):
                logger.warning('skipping source record %r: missing field %s', outcome.record_id, outcome.field)
                self.report.skipped.append(outcome)
            else:
                self._apply(outcome)
            if (i + 1) % PROGRESS_STEP == 0:
                logger.debug('%d/%d source records processed', i + 1, len(sources))

    def _iter_contributions(self,
                            sources: Sequence[SourceRecord],
                            index: TargetIndex,
                            ) -> Iterable[Union[Contributions, MissingField]]:
        if self.workers == 1:
            for source in sources:
                yield self._collect(source, index)
        else:
            with concurrent.futures.ThreadPoolExecutor(max_workers=self.workers) as executor:
                # map yields in submission order, so sums are applied deterministically
                yield from executor.map(lambda source: self._collect(source, index), sources)

    def _collect(self, source: SourceRecord, index: TargetIndex) -> Union[Contributions, MissingField]:
        try:
            return self.contributions(source, index)
        except MissingField as err:
            if self.policy.missing != MISSING_SKIP:
                raise
            return err

    def contributions(self, source: SourceRecord, index: TargetIndex) -> Contributions:
        """Compute what one source record adds to each target it overlaps.

        Returns a list of (target id, {field: increment}) pairs; targets with
        zero overlap are left out.
        """
        source_area = source.area()
        if not source_area > 0:
            raise DegenerateGeometry(source.id, source_area)
        for field in self.policy.required_fields:
            if field not in source.fields:
                raise MissingField(source.id, field)
        prepared = self.resolver.prepare(source)
        contributions = []
        for target_id in index.query(source.bounds):
            target = self._targets[target_id]
            isect_area = self.resolver.intersection_area(source, target, prepared)
            if isect_area == 0:
                continue
            fraction = isect_area / source_area
            contributions.append((target_id, {
                field: value * self.policy.weight_factor(field, source.fields, fraction)
                for field, value in source.fields.items()
            }))
        return contributions

    def _apply(self, contributions: Contributions) -> None:
        self.report.n_sources += 1
        for target_id, increments in contributions:
            fields = self._targets[target_id].fields
            for field, increment in increments.items():
                fields[field] += increment
            self.report.n_overlaps += 1

    def normalize(self) -> None:
        """Divide accumulated weighted-average fields by their denominators."""
        if self.phase is None:
            raise PhaseError('nothing was accumulated, cannot normalize')
        elif self.phase == self.NORMALIZED:
            raise PhaseError('targets were already normalized')
        self.phase = self.NORMALIZED
        for target in self._targets.values():
            for field, denom in self.policy.weights.items():
                denom_total = target.fields[denom]
                if denom_total == 0:
                    problem = UndefinedNormalization(target.id, field, denom)
                    logger.warning('%s, setting to %g', problem, self.policy.nodata)
                    self.report.undefined.append(problem)
                    target.fields[field] = self.policy.nodata
                else:
                    target.fields[field] /= denom_total
        logger.debug('normalized %d weighted fields in %d targets',
            len(self.policy.weights), len(self._targets)
        )

    def run(self, sources: Iterable[SourceRecord], index: TargetIndex) -> InterpolationReport:
        self.accumulate(sources, index)
        self.normalize()
        logger.info('interpolated %d source records onto %d targets (%d overlaps)',
            self.report.n_sources, len(self._targets), self.report.n_overlaps
        )
        return self.report


def interpolate(sources: Iterable[SourceRecord],
                index: Union[TargetIndex, Iterable[TargetRecord]],
                policy: Optional[WeightingPolicy] = None,
                resolver: Optional[OverlapResolver] = None,
                workers: int = 1,
                ) -> InterpolationReport:
    """Interpolate source record fields onto target records in place.

    :param sources: Source records in the same planar CRS as the targets.
    :param index: Target index, or the target records themselves to be indexed.
    :param policy: Weighting policy; all fields are extensive if omitted.
    """
    if not isinstance(index, TargetIndex):
        index = TargetIndex(index)
    return Interpolator(
        policy if policy is not None else WeightingPolicy(),
        resolver=resolver,
        workers=workers,
    ).run(sources, index)


def transfer_table(sources: Iterable[SourceRecord],
                   index: Union[TargetIndex, Iterable[TargetRecord]],
                   resolver: Optional[OverlapResolver] = None,
                   ) -> pd.DataFrame:
    """Compute areal weights transferring each source to the targets it overlaps.

    The weight is the share of the source area falling within the target, so
    applying the table to an extensive field reproduces the extensive part of
    :func:`interpolate`.
    """
    if not isinstance(index, TargetIndex):
        index = TargetIndex(index)
    if resolver is None:
        resolver = OverlapResolver()
    targets = index.by_id()
    rows = []
    for source in sources:
        source_area = source.area()
        if not source_area > 0:
            raise DegenerateGeometry(source.id, source_area)
        prepared = resolver.prepare(source)
        for target_id in index.query(source.bounds):
            isect_area = resolver.intersection_area(source, targets[target_id], prepared)
            if isect_area > 0:
                rows.append((source.id, target_id, isect_area / source_area))
    table = pd.DataFrame.from_records(rows, columns=['source_id', 'target_id', 'weight'])
    table['weight'] = table['weight'].astype(np.float64)
    return table.sort_values(['source_id', 'target_id']).reset_index(drop=True)
