# VMD Motion Optimizer by Barış Keser (barkeser2002)
# License: GNU General Public License v3.0 (GPL-3.0)
# See LICENSE for details.

import gzip
import struct

import pytest
import zstandard


def header(pointer_width=8, byte_order='little', version=b'279'):
    ptr = b'-' if pointer_width == 8 else b'_'
    endian = b'V' if byte_order == 'big' else b'v'
    return b'BLENDER' + ptr + endian + version


def block(tag, payload=b'', pointer_width=8, byte_order='little', size=None, sdna=0, count=1, old=0x1234):
    p = '>' if byte_order == 'big' else '<'
    ptr = 'Q' if pointer_width == 8 else 'I'
    size = len(payload) if size is None else size
    return tag + struct.pack(p + 'i' + ptr + 'ii', size, old, sdna, count) + payload


def scene_payload(name, start, end, byte_order='little', extra=b''):
    p = '>' if byte_order == 'big' else '<'
    raw = name.encode('utf-8') if isinstance(name, str) else name
    return struct.pack(p + 'ii', start, end) + raw.ljust(64, b'\x00') + extra


def make_blend(scenes=(), pointer_width=8, byte_order='little', version=b'279',
               before=(), after=(), end=True):
    """
    scenes: (name, start, end) tuples, each written as a REND block.
    before/after: (tag, payload) blocks written around the scene blocks.
    """
    geo = dict(pointer_width=pointer_width, byte_order=byte_order)
    out = [header(version=version, **geo)]
    for tag, payload in before:
        out.append(block(tag, payload, **geo))
    for name, start, stop in scenes:
        out.append(block(b'REND', scene_payload(name, start, stop, byte_order), **geo))
    for tag, payload in after:
        out.append(block(tag, payload, **geo))
    if end:
        out.append(block(b'ENDB', **geo))
    return b''.join(out)


def compress(data, compression):
    if compression == 'gzip':
        return gzip.compress(data)
    if compression == 'zstd':
        return zstandard.ZstdCompressor().compress(data)
    return data


@pytest.fixture
def write_blend(tmp_path):
    counter = iter(range(1000))

    def _write(data, compression=None, name=None):
        path = tmp_path / (name or 'file%d.blend' % next(counter))
        path.write_bytes(compress(data, compression))
        return str(path)

    return _write
