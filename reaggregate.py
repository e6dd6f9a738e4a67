'''Reaggregate polygon attributes from a source layer onto a target layer by areal weighting.

Extensive fields (such as total emissions) are split among the target polygons
in proportion to the overlapping share of each source polygon's area. Fields
given a denominator with -w (such as a concentration weighted by population)
are computed as denominator-weighted averages instead.

Both layers are reprojected to a common planar CRS first, by default the
InMAP modelling grid projection.
'''

import sys
import logging

import reagg.argparser
import reagg.core
import reagg.index
import reagg.interpolate
import reagg.layers
import reagg.overlap
import reagg.policy
import reagg.records

parser = reagg.argparser.default(__doc__, layers=True, weighting=True)
parser.add_argument('out_file',
    help='path to output the target layer with interpolated fields'
)
parser.add_argument('-f', '--field', nargs='+',
    help='source fields to interpolate (all numeric fields if not given)'
)
parser.add_argument('-a', '--min-area', type=float, default=0.,
    help='overlaps with this area or smaller are ignored'
)
parser.add_argument('-j', '--workers', type=int, default=1,
    help='number of threads computing overlaps'
)


if __name__ == '__main__':
    args = parser.parse_args()
    logging.basicConfig(
        stream=sys.stdout,
        level=(logging.DEBUG if args.verbose else logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    policy = reagg.policy.from_args(args)
    logging.info('loading source layer from %s', args.source_file)
    source_gdf = reagg.core.read_layer(args.source_file, args)
    logging.info('loading target layer from %s', args.target_file)
    target_gdf = reagg.core.read_layer(args.target_file, args)
    sources = reagg.layers.source_records(
        source_gdf,
        fields=args.field,
        id_field=args.source_id_field,
        exclude=[args.target_id_field or 'target_id'],
    )
    targets = reagg.layers.target_records(target_gdf, id_field=args.target_id_field)
    report = reagg.interpolate.Interpolator(
        policy,
        resolver=reagg.overlap.OverlapResolver(min_area=args.min_area),
        workers=args.workers,
    ).run(sources, reagg.index.TargetIndex(targets))
    if report.skipped:
        logging.warning('%d source records skipped for missing fields', len(report.skipped))
    if report.undefined:
        logging.warning('%d weighted averages undefined, set to %g',
            len(report.undefined), policy.nodata
        )
    out_gdf = reagg.layers.records_to_gdf(
        targets,
        reagg.records.schema_of(sources),
        crs=target_gdf.crs,
        id_field=(args.target_id_field or 'target_id'),
    )
    reagg.core.write_gdf(out_gdf, args.out_file)
