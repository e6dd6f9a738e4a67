"""Conversion between polygon layers (geodataframes) and in-memory records."""

import logging
from typing import Any, List, Optional, Sequence

import pandas as pd
import geopandas as gpd

from reagg.core import normalize_field_name, to_float
from reagg.records import SourceRecord, TargetRecord

logger = logging.getLogger(__name__)


def normalize_columns(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Normalize all non-geometry column names of the layer."""
    geom_col = gdf.geometry.name
    renamed = {
        col: normalize_field_name(col)
        for col in gdf.columns if col != geom_col
    }
    normalized = list(renamed.values())
    if len(set(normalized)) != len(normalized):
        raise ValueError(f'field names clash after normalization: {", ".join(normalized)}')
    return gdf.rename(columns=renamed)


def numeric_fields(gdf: gpd.GeoDataFrame, exclude: Sequence[str] = ()) -> List[str]:
    """List the non-geometry columns whose values can all be read as numbers."""
    fields = []
    for col in gdf.columns:
        if col == gdf.geometry.name or col in exclude:
            continue
        try:
            gdf[col].map(to_float)
        except (TypeError, ValueError):
            logger.debug('field %s is not numeric, ignoring', col)
        else:
            fields.append(col)
    return fields


def _field_frame(gdf: gpd.GeoDataFrame, fields: Sequence[str]) -> pd.DataFrame:
    missing = [field for field in fields if field not in gdf.columns]
    if missing:
        raise KeyError(f'fields not found in layer: {", ".join(missing)}')
    return pd.DataFrame({field: gdf[field].map(to_float) for field in fields}, index=gdf.index)


def _check_polygonal(gdf: gpd.GeoDataFrame) -> None:
    bad_types = set(gdf.geom_type.dropna()) - {'Polygon', 'MultiPolygon'}
    if bad_types or gdf.geometry.isna().any():
        raise ValueError(
            f'layer must contain only polygons, found {", ".join(sorted(bad_types)) or "empty geometries"}'
        )


def source_records(gdf: gpd.GeoDataFrame,
                   fields: Optional[Sequence[str]] = None,
                   id_field: Optional[str] = None,
                   exclude: Sequence[str] = (),
                   ) -> List[SourceRecord]:
    """Build source records from a polygon layer.

    :param fields: Fields to carry over; all numeric fields if omitted.
    :param id_field: Field identifying the records; the row labels if omitted.
    :param exclude: Fields never picked up when detecting numeric fields.
    """
    gdf = normalize_columns(gdf)
    _check_polygonal(gdf)
    if id_field:
        id_field = normalize_field_name(id_field)
    if fields is None:
        exclude = [normalize_field_name(field) for field in exclude]
        fields = numeric_fields(gdf, exclude=exclude + ([id_field] if id_field else []))
    else:
        fields = [normalize_field_name(field) for field in fields]
    values = _field_frame(gdf, fields)
    ids = gdf[id_field] if id_field else gdf.index
    columns = {field: values[field].tolist() for field in fields}
    records = [
        SourceRecord(rec_id, geom, {field: columns[field][i] for field in fields})
        for i, (rec_id, geom) in enumerate(zip(ids, gdf.geometry))
    ]
    logger.debug('%d source records with %d fields loaded', len(records), len(fields))
    return records


def target_records(gdf: gpd.GeoDataFrame, id_field: Optional[str] = None) -> List[TargetRecord]:
    """Build target records with empty accumulators from a polygon layer.

    :param id_field: Field with unique target identifiers; the row labels
        if omitted.
    """
    gdf = normalize_columns(gdf)
    _check_polygonal(gdf)
    ids = gdf[normalize_field_name(id_field)] if id_field else gdf.index
    if not ids.is_unique:
        raise ValueError('target identifiers are not unique')
    records = [TargetRecord(rec_id, geom) for rec_id, geom in zip(ids, gdf.geometry)]
    logger.debug('%d target records loaded', len(records))
    return records


def records_to_gdf(targets: Sequence[TargetRecord],
                   fields: Sequence[str],
                   crs: Any = None,
                   id_field: str = 'id',
                   ) -> gpd.GeoDataFrame:
    """Build an output layer from target records, one column per field."""
    if id_field in fields:
        raise ValueError(f'identifier column {id_field!r} clashes with an output field')
    return gpd.GeoDataFrame(
        {
            id_field: [target.id for target in targets],
            **{field: [target.fields.get(field, 0.) for target in targets] for field in fields},
        },
        geometry=[target.geometry for target in targets],
        crs=crs,
    )
