"""Precomposed argument parsers for this package's scripts."""

import argparse

from reagg.policy import MODES, MISSING_POLICIES, DEFAULT_NODATA


def default(docstring: str,
            layers: bool = False,
            weighting: bool = False,
            ):
    """Create a default argument parser with docstring as main help.

    Optionally, also add some common groups of options.
    """
    parser = argparse.ArgumentParser(
        description=docstring,
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    if layers: add_layers(parser)
    if weighting: add_weighting(parser)
    parser.add_argument('-v', '--verbose', action='store_true',
        help='show detailed progress messages'
    )
    return parser


def add_layers(parser):
    parser.add_argument('source_file',
        help='source value layer as a GDAL-compatible polygon file or CSV with WKT'
    )
    parser.add_argument('target_file',
        help='target area layer as a GDAL-compatible polygon file or CSV with WKT'
    )
    parser.add_argument('-s', '--source-id-field',
        help='ID field of the source layer (row order if not given)'
    )
    parser.add_argument('-t', '--target-id-field',
        help='ID field of the target layer (row order if not given)'
    )
    parser.add_argument('-r', '--crs', default='inmap',
        help='working CRS to reproject both layers to (EPSG code, proj string,'
             ' WKT or "inmap" for the InMAP grid projection); "none" to keep'
             ' the layers as they are'
    )
    parser.add_argument('--srid', type=int,
        help='EPSG SRID of the geometries in CSV layers'
    )


def add_weighting(parser):
    parser.add_argument('-w', '--weight', nargs=2, action='append', default=[],
        metavar=('FIELD', 'DENOMINATOR'),
        help='field to compute as a weighted average and its denominator (weight) field'
    )
    parser.add_argument('-c', '--conf',
        help='JSON weighting configuration file (command line options take precedence)'
    )
    parser.add_argument('-m', '--mode', choices=MODES,
        help='weighting mode for weighted-average fields'
             f' (default: {MODES[0]})'
    )
    parser.add_argument('-M', '--missing', choices=MISSING_POLICIES,
        help='handling of source records lacking a weighting field'
             f' (default: {MISSING_POLICIES[0]})'
    )
    parser.add_argument('-n', '--nodata', type=float,
        help=f'value of weighted averages with zero denominator (default: {DEFAULT_NODATA:g})'
    )
