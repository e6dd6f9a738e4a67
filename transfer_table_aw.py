'''Create a transfer table to perform areal interpolation between two sets of units by areal weighting.

A transfer table specifies what share of a given source area values is to
be transferred to a given target area. This is computed using their area
overlaps, exactly as the extensive fields are distributed by reaggregate.py.
'''

import sys
import logging

import reagg.argparser
import reagg.core
import reagg.interpolate
import reagg.layers

parser = reagg.argparser.default(__doc__, layers=True)
parser.add_argument('out_table',
    help='path to output the transfer table as a semicolon-delimited CSV'
)

if __name__ == '__main__':
    args = parser.parse_args()
    logging.basicConfig(
        stream=sys.stdout,
        level=(logging.DEBUG if args.verbose else logging.INFO),
    )
    sources = reagg.layers.source_records(
        reagg.core.read_layer(args.source_file, args),
        fields=[],
        id_field=args.source_id_field,
    )
    targets = reagg.layers.target_records(
        reagg.core.read_layer(args.target_file, args),
        id_field=args.target_id_field,
    )
    table = reagg.interpolate.transfer_table(sources, targets)
    logging.info('%d transfer weights computed', len(table.index))
    if args.source_id_field and args.target_id_field and args.source_id_field != args.target_id_field:
        table = table.rename(columns={
            'source_id': args.source_id_field,
            'target_id': args.target_id_field,
        })
    table.to_csv(args.out_table, sep=';', index=False)
