# VMD Motion Optimizer by Barış Keser (barkeser2002)
# License: GNU General Public License v3.0 (GPL-3.0)
# See LICENSE for details.

import argparse
import binascii
import sys

from blend_bouncer import inspect_stream
from blend_io import BlendDecodeError, BlendFileReader, iter_blocks, skip_bytes


def peek(path: str, start: int = 0, n: int = 256, blocks: bool = False, out=None):
    out = out or sys.stdout
    # offset'ler sıkıştırılmamış veriye göre
    try:
        with BlendFileReader(path) as f:
            skip_bytes(f, start)
            data = f.read(n)
    except BlendDecodeError as e:
        print('error', type(e).__name__, e, file=out)
        return
    print('offset', start, 'len', len(data), file=out)
    print('hex', binascii.hexlify(data).decode('ascii'), file=out)
    if start != 0:
        return
    print('first12', data[:12], file=out)
    try:
        with BlendFileReader(path) as f:
            geometry, version = inspect_stream(f)
            print('version', version, file=out)
            print('pointer_width', geometry.pointer_width, 'byte_order', geometry.byte_order,
                  'bhead_size', geometry.bhead_size, file=out)
            if not blocks:
                return
            for i, bhead in enumerate(iter_blocks(f, geometry)):
                print('block', i, bhead.tag.decode('ascii', errors='replace'), 'size', bhead.size,
                      'sdna', bhead.sdna, 'count', bhead.count, file=out)
    except BlendDecodeError as e:
        print('error', type(e).__name__, e, file=out)


def main(argv=None):
    ap = argparse.ArgumentParser(prog='blend-peek', description='.blend dosyasının baytlarına bak')
    ap.add_argument('path')
    ap.add_argument('start', nargs='?', type=int, default=0)
    ap.add_argument('n', nargs='?', type=int, default=256)
    ap.add_argument('--blocks', action='store_true', help='blok listesini de yaz')
    args = ap.parse_args(argv)
    peek(args.path, args.start, args.n, blocks=args.blocks)


if __name__ == '__main__':
    main()
