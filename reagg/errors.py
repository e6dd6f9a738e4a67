"""Exceptions raised during areal re-aggregation."""

from typing import Any


class Error(Exception):
    pass


class InvalidWeightingPolicy(Error):
    pass


class PhaseError(Error):
    pass


class DegenerateGeometry(Error):
    def __init__(self, record_id: Any, area: float):
        super().__init__(f'source record {record_id!r} has non-positive area {area!r}')
        self.record_id = record_id
        self.area = area


class MissingField(Error):
    def __init__(self, record_id: Any, field: str):
        super().__init__(f'record {record_id!r} lacks field {field!r} required by weighting policy')
        self.record_id = record_id
        self.field = field


class UndefinedNormalization(Error):
    """A weighted average whose denominator accumulated to zero.

    Not raised by the engine; instances are collected in the interpolation
    report for every affected target field.
    """
    def __init__(self, target_id: Any, field: str, denominator: str):
        super().__init__(
            f'target {target_id!r}: cannot normalize {field!r},'
            f' denominator {denominator!r} is zero'
        )
        self.target_id = target_id
        self.field = field
        self.denominator = denominator
