"""Per-field weighting configuration for areal re-aggregation.

Fields not named in the policy are extensive: their values are split among
target polygons in proportion to the overlapping share of the source area.
Fields named in the policy are intensive: each one is paired with a
denominator field (such as population) and ends up as a
denominator-weighted average in every target polygon.

Two weighting modes exist for intensive fields, differing in whether the
``value * denominator`` mass is also scaled by the overlap fraction:

- ``denominator-weighted-no-area`` adds the full ``value * denominator`` of
  the source to every target it overlaps,
- ``area-weighted`` adds ``value * denominator * overlap / source_area``.
"""

import json
import logging
import os
from typing import Any, Dict, Iterable, List, Mapping, Optional

from reagg.core import normalize_field_name
from reagg.errors import InvalidWeightingPolicy

logger = logging.getLogger(__name__)

NO_AREA_MODE: str = 'denominator-weighted-no-area'
AREA_MODE: str = 'area-weighted'
MODES: List[str] = [NO_AREA_MODE, AREA_MODE]

MISSING_RAISE: str = 'raise'
MISSING_SKIP: str = 'skip'
MISSING_POLICIES: List[str] = [MISSING_RAISE, MISSING_SKIP]

DEFAULT_NODATA: float = -9999.


class WeightingPolicy:
    """Validated weighting configuration passed to the interpolation engine.

    :param weights: Mapping of weighted-average (intensive) field names to
        the names of their denominator fields.
    :param mode: Weighting mode for intensive fields, one of :data:`MODES`.
    :param missing: What to do with a source record lacking a field the
        policy refers to: ``raise`` aborts the run, ``skip`` leaves the
        record out and reports it.
    :param nodata: Value written to a weighted-average field of a target
        whose denominator accumulated to zero.
    """
    def __init__(self,
                 weights: Optional[Mapping[str, str]] = None,
                 mode: str = NO_AREA_MODE,
                 missing: str = MISSING_RAISE,
                 nodata: float = DEFAULT_NODATA,
                 ):
        self.weights: Dict[str, str] = {
            normalize_field_name(field): normalize_field_name(denom)
            for field, denom in (weights or {}).items()
        }
        if mode not in MODES:
            raise InvalidWeightingPolicy(
                f'unknown weighting mode {mode!r}, use one of {", ".join(MODES)}'
            )
        if missing not in MISSING_POLICIES:
            raise InvalidWeightingPolicy(
                f'unknown missing field policy {missing!r},'
                f' use one of {", ".join(MISSING_POLICIES)}'
            )
        self.mode = mode
        self.missing = missing
        self.nodata = float(nodata)
        self._check_denominators()

    def _check_denominators(self) -> None:
        for field, denom in self.weights.items():
            if denom in self.weights:
                raise InvalidWeightingPolicy(
                    f'denominator {denom!r} of {field!r} is itself a weighted-average field'
                )

    @classmethod
    def from_dict(cls, conf: Mapping[str, Any]) -> 'WeightingPolicy':
        unknown = set(conf) - {'weights', 'mode', 'missing', 'nodata'}
        if unknown:
            raise InvalidWeightingPolicy(
                f'unknown weighting configuration keys: {", ".join(sorted(unknown))}'
            )
        return cls(**conf)

    @classmethod
    def from_json(cls, path: os.PathLike) -> 'WeightingPolicy':
        """Load the policy from a JSON file.

        The file holds an object with a ``weights`` mapping and optionally
        the ``mode``, ``missing`` and ``nodata`` settings.
        """
        with open(path) as conffile:
            try:
                conf = json.load(conffile)
            except json.JSONDecodeError as err:
                raise InvalidWeightingPolicy(f'malformed weighting configuration {path}: {err}') from err
        if not isinstance(conf, dict):
            raise InvalidWeightingPolicy(f'weighting configuration {path} must be a JSON object')
        return cls.from_dict(conf)

    def updated(self, **kwargs) -> 'WeightingPolicy':
        """Return a copy of this policy with some settings replaced."""
        settings = dict(weights=self.weights, mode=self.mode, missing=self.missing, nodata=self.nodata)
        settings.update(kwargs)
        return type(self)(**settings)

    @property
    def denominators(self) -> List[str]:
        return list(dict.fromkeys(self.weights.values()))

    @property
    def required_fields(self) -> List[str]:
        """All fields the policy refers to, weighted fields first."""
        return list(dict.fromkeys(list(self.weights) + self.denominators))

    def is_weighted(self, field: str) -> bool:
        return field in self.weights

    def validate(self, schema: Iterable[str]) -> 'WeightingPolicy':
        """Check the policy against the source schema.

        Field names not found verbatim are matched case-insensitively against
        the schema. Returns a policy using the schema's spelling; raises
        :class:`InvalidWeightingPolicy` if any referenced field is absent.
        """
        schema = list(schema)
        folded = {}
        for name in schema:
            folded.setdefault(name.casefold(), []).append(name)

        def resolve(name):
            if name in schema:
                return name
            candidates = folded.get(name.casefold(), [])
            if len(candidates) == 1:
                logger.debug('resolved policy field %s to %s', name, candidates[0])
                return candidates[0]
            elif candidates:
                raise InvalidWeightingPolicy(
                    f'field {name!r} is ambiguous in source schema: {", ".join(candidates)}'
                )
            raise InvalidWeightingPolicy(f'field {name!r} not found in source schema')

        resolved = {}
        for field, denom in self.weights.items():
            name = resolve(field)
            if name in resolved:
                raise InvalidWeightingPolicy(
                    f'fields {field!r} and {resolved[name][0]!r} both resolve to {name!r}'
                )
            resolved[name] = (field, resolve(denom))
        return self.updated(weights={name: denom for name, (field, denom) in resolved.items()})

    def weight_factor(self, field: str, values: Mapping[str, float], fraction: float) -> float:
        """Return the factor to multiply a source field value by for one target.

        :param field: Name of the source field being distributed.
        :param values: All field values of the source record.
        :param fraction: Share of the source area overlapping the target.
        """
        denom = self.weights.get(field)
        if denom is None:
            return fraction
        elif self.mode == AREA_MODE:
            return values[denom] * fraction
        else:
            return values[denom]

    def __repr__(self):
        return f'<WeightingPolicy {self.weights!r} mode={self.mode} missing={self.missing}>'


def from_args(args) -> WeightingPolicy:
    """Build the weighting policy from commandline arguments.

    Settings given on the command line override those from the configuration
    file; weight pairs are merged with the configured ones.
    """
    policy = WeightingPolicy.from_json(args.conf) if args.conf else WeightingPolicy()
    overrides = {
        name: getattr(args, name)
        for name in ('mode', 'missing', 'nodata')
        if getattr(args, name) is not None
    }
    if args.weight:
        overrides['weights'] = {**policy.weights, **dict(args.weight)}
    return policy.updated(**overrides) if overrides else policy
