"""Functions for library-wide use: spatial I/O, CRS handling, field parsing."""

import os
import logging
from typing import Any, List, Optional, Union

import pandas as pd
import geopandas as gpd
import shapely.geometry
import pyproj

logger = logging.getLogger(__name__)

CHECK_GEOM_COLS: List[str] = ['geometry', 'wkt']

# Lambert conformal conic projection of the InMAP modelling grid.
INMAP_GRID_WKT: str = (
    'PROJCS["Lambert_Conformal_Conic",'
    'GEOGCS["GCS_unnamed ellipse",DATUM["D_unknown",SPHEROID["Unknown",6370997,0]],'
    'PRIMEM["Greenwich",0],UNIT["Degree",0.017453292519943295]],'
    'PROJECTION["Lambert_Conformal_Conic"],'
    'PARAMETER["standard_parallel_1",33],PARAMETER["standard_parallel_2",45],'
    'PARAMETER["latitude_of_origin",40],PARAMETER["central_meridian",-97],'
    'PARAMETER["false_easting",0],PARAMETER["false_northing",0],'
    'UNIT["Meter",1]]'
)

NAMED_CRS = {
    'inmap': INMAP_GRID_WKT,
}

AnyPolygon = Union[
    shapely.geometry.Polygon,
    shapely.geometry.MultiPolygon,
]


def normalize_field_name(name: Any) -> str:
    """Strip NUL padding and surrounding whitespace from a field name."""
    name = str(name)
    nul_at = name.find('\x00')
    if nul_at != -1:
        name = name[:nul_at]
    return name.strip()


def to_float(value: Any) -> float:
    """Coerce an attribute value to float.

    Missing values, empty strings and dBASE numeric overflow markers (fields
    filled with asterisks) are read as zero. Anything else that does not parse
    as a number raises ValueError.
    """
    if isinstance(value, str):
        value = value.replace('\x00', '').strip()
        if not value or set(value) == {'*'}:
            return 0.
        return float(value)
    elif pd.isna(value):
        return 0.
    return float(value)


def resolve_crs(crsdef: Union[str, int, pyproj.CRS]) -> pyproj.CRS:
    """Create a PyProj CRS from an EPSG code, a user string or a known CRS name."""
    if isinstance(crsdef, str):
        crsdef = NAMED_CRS.get(crsdef.strip().lower(), crsdef)
        if crsdef.isdigit():
            crsdef = int(crsdef)
    return pyproj.CRS.from_user_input(crsdef)


def reproject(gdf: gpd.GeoDataFrame, crsdef: Union[str, int, pyproj.CRS]) -> gpd.GeoDataFrame:
    """Reproject a geodataframe to the given CRS if it is not there already."""
    crs = resolve_crs(crsdef)
    if gdf.crs is None:
        raise ValueError('cannot reproject a layer without a CRS')
    if pyproj.CRS(gdf.crs) == crs:
        return gdf
    logger.debug('reprojecting %d geometries to %s', len(gdf.index), crs.name)
    return gdf.to_crs(crs)


def wkt_gdf(df: pd.DataFrame,
            wkt_col: str = CHECK_GEOM_COLS[0],
            srid: Optional[int] = None,
            drop_locs: bool = True,
            ) -> gpd.GeoDataFrame:
    """Build a geodataframe from a dataframe with WKT."""
    return gpd.GeoDataFrame(
        (df.drop(wkt_col, axis=1) if drop_locs else df),
        crs=srid,
        geometry=gpd.GeoSeries.from_wkt(df[wkt_col]),
    )


def read_gdf(path: os.PathLike, **kwargs) -> gpd.GeoDataFrame:
    """Read a geodataframe from a file at the given path.

    If the file is a CSV, :func:`read_csv_gdf` is used, otherwise, GDAL machinery
    is invoked through ``geopandas.read_file``.
    """
    logger.debug('loading layer from %s', path)
    if os.fspath(path).endswith('.csv'):
        return read_csv_gdf(path, **kwargs)
    else:
        return gpd.read_file(path)


def write_gdf(gdf: gpd.GeoDataFrame, path: os.PathLike) -> None:
    """Write a geodataframe to a file at the given path.

    If the path denotes a CSV file, ``pandas.DataFrame.to_csv`` is used (which
    converts the geometries to WKT); otherwise, GDAL machinery is invoked
    through ``geopandas.GeoDataFrame.to_file``, which also writes the CRS
    alongside (the ``.prj`` file for shapefiles).
    """
    logger.debug('saving %d features to %s', len(gdf.index), path)
    if os.fspath(path).endswith('.csv'):
        gdf.to_wkt().to_csv(path, sep=';', index=False)
    else:
        gdf.to_file(path)


def read_csv_gdf(path: os.PathLike,
                 srid: Optional[int] = None,
                 check_wkt_cols: List[str] = CHECK_GEOM_COLS,
                 ) -> gpd.GeoDataFrame:
    """Read a polygon geodataframe from a CSV file at the given path.

    The CSV is loaded using pandas and its columns are inspected. The first of
    ``check_wkt_cols`` found (case-insensitively) is parsed as WKT geometry.
    srid determines the EPSG CRS ID to be assigned to the geometries.
    """
    df = pd.read_csv(path, sep=';')
    cols = [col.lower() for col in df.columns.tolist()]
    for col in check_wkt_cols:
        if col in cols:
            return wkt_gdf(df, df.columns[cols.index(col)], srid=srid)
    raise ValueError(f'no geometry column ({", ".join(check_wkt_cols)}) found in {path}')


def read_layer(path: os.PathLike, args) -> gpd.GeoDataFrame:
    """A shorthand for read_gdf and reproject from commandline arguments."""
    gdf = read_gdf(path, srid=args.srid)
    if args.crs and args.crs.lower() != 'none':
        gdf = reproject(gdf, args.crs)
    return gdf
