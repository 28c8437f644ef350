# VMD Motion Optimizer by Barış Keser (barkeser2002)
# License: GNU General Public License v3.0 (GPL-3.0)
# See LICENSE for details.

import io

import pytest

from blend_io import (
    BHEAD_FIELDS,
    SCENE_FIELDS,
    BlendFileReader,
    BlockHeader,
    CorruptBlock,
    FormatGeometry,
    TruncatedBlock,
    TruncatedHeader,
    field_dtype,
    iter_blocks,
    read_block_header,
    read_exact,
    read_fields,
    skip_bytes,
)
from conftest import block, make_blend, scene_payload


class Trickle(io.RawIOBase):
    """Hands out at most 3 bytes per read, like a lazy decompressor."""

    def __init__(self, data):
        self._buf = io.BytesIO(data)

    def readable(self):
        return True

    def read(self, n=-1):
        return self._buf.read(min(n, 3) if n >= 0 else 3)


def test_field_dtype_sizes():
    assert field_dtype(BHEAD_FIELDS, FormatGeometry(8, 'little')).itemsize == 20
    assert field_dtype(BHEAD_FIELDS, FormatGeometry(4, 'big')).itemsize == 16
    assert field_dtype(SCENE_FIELDS, FormatGeometry(4, 'little')).itemsize == 72


def test_read_fields_byte_order():
    big = FormatGeometry(4, 'big')
    little = FormatGeometry(4, 'little')
    raw = scene_payload('Scene', 1, 250, byte_order='big')
    rec = read_fields(io.BytesIO(raw), SCENE_FIELDS, big)
    assert (int(rec['start']), int(rec['end'])) == (1, 250)
    # same bytes, other order
    rec = read_fields(io.BytesIO(raw), SCENE_FIELDS, little)
    assert int(rec['start']) == 1 << 24


def test_read_exact_collects_short_reads():
    assert read_exact(Trickle(b'BLENDER-v279'), 12) == b'BLENDER-v279'


def test_read_exact_raises_given_error():
    with pytest.raises(TruncatedHeader):
        read_exact(io.BytesIO(b'BLE'), 7, TruncatedHeader)
    with pytest.raises(TruncatedBlock):
        read_exact(io.BytesIO(b''), 1)


def test_skip_bytes():
    f = io.BytesIO(b'\x00' * 200000 + b'TAIL')
    skip_bytes(f, 200000)
    assert f.read() == b'TAIL'
    with pytest.raises(TruncatedBlock):
        skip_bytes(io.BytesIO(b'\x00' * 10), 11)


def test_read_block_header():
    geometry = FormatGeometry(8, 'little')
    f = io.BytesIO(block(b'GLOB', b'abc', sdna=7, count=2, old=0xdeadbeefcafe) + block(b'ENDB'))
    bhead = read_block_header(f, geometry)
    assert bhead == BlockHeader(tag=b'GLOB', size=3, old=0xdeadbeefcafe, sdna=7, count=2)
    assert f.read(3) == b'abc'
    assert read_block_header(f, geometry) is None


def test_read_block_header_end_of_stream():
    assert read_block_header(io.BytesIO(b''), FormatGeometry(4, 'little')) is None


def test_read_block_header_from_trickle():
    geometry = FormatGeometry(4, 'big')
    data = block(b'REND', scene_payload('S', 1, 2, byte_order='big'), pointer_width=4, byte_order='big')
    bhead = read_block_header(Trickle(data), geometry)
    assert bhead.tag == b'REND'
    assert bhead.size == 72


def test_iter_blocks():
    data = make_blend([('Scene', 1, 250)], pointer_width=4,
                      before=[(b'TEST', b'\x01' * 9)], after=[(b'DNA1', b'\x02' * 33)])
    f = io.BytesIO(data)
    f.seek(12)
    tags = [(b.tag, b.size) for b in iter_blocks(f, FormatGeometry(4, 'little'))]
    assert tags == [(b'TEST', 9), (b'REND', 72), (b'DNA1', 33)]


def test_iter_blocks_negative_size():
    f = io.BytesIO(block(b'GLOB', size=-1))
    with pytest.raises(CorruptBlock):
        list(iter_blocks(f, FormatGeometry(8, 'little')))


@pytest.mark.parametrize('compression', [None, 'gzip', 'zstd'])
def test_reader_closes_and_reports_compression(write_blend, compression):
    path = write_blend(make_blend(), compression)
    reader = BlendFileReader(path)
    with reader as f:
        assert f.read(7) == b'BLENDER'
        assert reader.compression == compression
    assert f.closed
