# VMD Motion Optimizer by Barış Keser (barkeser2002)
# License: GNU General Public License v3.0 (GPL-3.0)
# See LICENSE for details.

"""
Low level .blend reading helpers.

A .blend file is a 12 byte header followed by file blocks:

    typedef struct BHead {
        int code, len;
        void *old;
        int SDNAnr, nr;
    } BHead;

Pointer size and byte order come from the header, so every field layout here
is resolved against a FormatGeometry before it is decoded.
"""

import io
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterator, Optional, Tuple

import numpy as np
import zstandard

logger = logging.getLogger(__name__)

# ---------- Format sabitleri ----------

BLEND_MAGIC = b'BLENDER'
GZIP_MAGIC = b'\x1f\x8b'
ZSTD_MAGIC = b'\x28\xb5\x2f\xfd'

POINTER_MARKER_64 = b'-'
BIG_ENDIAN_MARKER = b'V'

HEADER_SIZE = 12
VERSION_OFFSET = 9
VERSION_SIZE = 3

SCENE_TAG = b'REND'
END_TAG = b'ENDB'
DNA_TAG = b'DNA1'

PTR = 'ptr'  # resolved to u4/u8 by the geometry

# BHead without the 4 byte code
BHEAD_FIELDS = (('size', 'i4'), ('old', PTR), ('sdna', 'i4'), ('count', 'i4'))
# RenderInfo: sfra, efra, scene_name[64]
SCENE_FIELDS = (('start', 'i4'), ('end', 'i4'), ('name', 'S64'))

_SKIP_CHUNK = 1 << 16


# ---------- Hatalar ----------

class BlendDecodeError(Exception):
    """Base class for everything that can go wrong while decoding one file."""


class BlendIOError(BlendDecodeError, OSError):
    pass


class TruncatedHeader(BlendDecodeError):
    pass


class TruncatedBlock(BlendDecodeError):
    """The stream ended in the middle of a block.

    `scenes` holds whatever was decoded before the cut; it is never returned
    as a successful result.
    """

    def __init__(self, message: str, scenes: Optional[dict] = None):
        super().__init__(message)
        self.scenes = scenes if scenes is not None else {}


class InvalidMagic(BlendDecodeError):
    pass


class BlendEncodingError(BlendDecodeError, ValueError):
    pass


class CorruptBlock(BlendDecodeError):
    pass


# ---------- Geometri ----------

@dataclass(frozen=True)
class FormatGeometry:
    pointer_width: int  # 4 or 8
    byte_order: str  # 'little' or 'big'

    @classmethod
    def from_header(cls, head: bytes) -> 'FormatGeometry':
        if len(head) < VERSION_OFFSET:
            raise TruncatedHeader(f'header needs {VERSION_OFFSET} bytes, got {len(head)}')
        pointer_width = 8 if head[7:8] == POINTER_MARKER_64 else 4
        byte_order = 'big' if head[8:9] == BIG_ENDIAN_MARKER else 'little'
        return cls(pointer_width=pointer_width, byte_order=byte_order)

    @property
    def prefix(self) -> str:
        return '>' if self.byte_order == 'big' else '<'

    @property
    def bhead_size(self) -> int:
        # 24 for 64 bit, 20 for 32 bit
        return 4 + field_dtype(BHEAD_FIELDS, self).itemsize


@dataclass(frozen=True)
class BlockHeader:
    tag: bytes
    size: int
    old: int
    sdna: int
    count: int


# ---------- Akış ----------

class BlendFileReader:
    """
    Return a file handle to the raw blend file data (abstracting compressed formats).
    """
    __slots__ = (
        '_filepath',
        '_blendfile_base',
        '_blendfile',
        'compression',
    )

    def __init__(self, filepath):
        self._filepath = filepath
        self._blendfile_base = None
        self._blendfile = None
        self.compression = None

    def __enter__(self):
        try:
            blendfile = open(self._filepath, 'rb')
        except OSError as e:
            raise BlendIOError(f'cannot open {self._filepath}: {e}') from e
        try:
            head = blendfile.read(4)
            blendfile.seek(0)
        except OSError as e:
            blendfile.close()
            raise BlendIOError(f'cannot read {self._filepath}: {e}') from e

        blendfile_base = None
        if head[0:2] == GZIP_MAGIC:
            import gzip
            blendfile_base = blendfile
            blendfile = gzip.GzipFile(fileobj=blendfile_base, mode='rb')
            self.compression = 'gzip'
        elif head[0:4] == ZSTD_MAGIC:
            blendfile_base = blendfile
            # Blender writes several zstd frames, keep reading past the first one
            dctx = zstandard.ZstdDecompressor()
            blendfile = dctx.stream_reader(blendfile_base, read_across_frames=True)
            self.compression = 'zstd'
        logger.debug('opened %s (compression=%s)', self._filepath, self.compression)

        self._blendfile_base = blendfile_base
        self._blendfile = blendfile
        return self._blendfile

    def __exit__(self, exc_type, exc_value, exc_traceback):
        self._blendfile.close()
        if self._blendfile_base is not None:
            self._blendfile_base.close()
        return False


def read_exact(f: io.IOBase, n: int, error=TruncatedBlock) -> bytes:
    """Read exactly n bytes or raise `error`.

    Decompressing readers may hand back short reads, so keep asking until the
    stream is really empty.
    """
    chunks = []
    missing = n
    try:
        while missing > 0:
            chunk = f.read(missing)
            if not chunk:
                break
            chunks.append(chunk)
            missing -= len(chunk)
    except EOFError as e:
        raise error(f'compressed stream ended early: {e}') from e
    except zstandard.ZstdError as e:
        raise BlendIOError(f'zstd decompression failed: {e}') from e
    except OSError as e:
        raise BlendIOError(str(e)) from e
    data = b''.join(chunks)
    if missing > 0:
        raise error(f'expected {n} bytes, got {len(data)}')
    return data


def skip_bytes(f: io.IOBase, n: int, error=TruncatedBlock) -> None:
    # read instead of seek so a short payload is noticed on compressed streams too
    while n > 0:
        step = min(n, _SKIP_CHUNK)
        read_exact(f, step, error)
        n -= step


# ---------- Alan düzeni ----------

@lru_cache(maxsize=None)
def field_dtype(fields: Tuple[Tuple[str, str], ...], geometry: FormatGeometry) -> np.dtype:
    """Packed numpy dtype for a field layout in the geometry's byte order."""
    spec = []
    for name, code in fields:
        if code == PTR:
            code = 'u%d' % geometry.pointer_width
        if code.startswith('S'):
            spec.append((name, code))
        else:
            spec.append((name, geometry.prefix + code))
    return np.dtype(spec)


def read_fields(f: io.IOBase, fields, geometry: FormatGeometry, error=TruncatedBlock) -> np.void:
    dtype = field_dtype(fields, geometry)
    raw = read_exact(f, dtype.itemsize, error)
    return np.frombuffer(raw, dtype=dtype, count=1)[0]


def read_block_header(f: io.IOBase, geometry: FormatGeometry) -> Optional[BlockHeader]:
    """Read the next BHead; None at ENDB or at a clean end of stream."""
    try:
        tag = f.read(4)
    except EOFError as e:
        raise TruncatedBlock(f'compressed stream ended early: {e}') from e
    except zstandard.ZstdError as e:
        raise BlendIOError(f'zstd decompression failed: {e}') from e
    except OSError as e:
        raise BlendIOError(str(e)) from e
    if not tag:
        logger.debug('stream exhausted before %r', END_TAG)
        return None
    if len(tag) < 4:
        tag += read_exact(f, 4 - len(tag))
    if tag == END_TAG:
        # ENDB may be cut short in some files, don't read the rest
        return None

    rec = read_fields(f, BHEAD_FIELDS, geometry)
    return BlockHeader(tag=tag, size=int(rec['size']), old=int(rec['old']),
                       sdna=int(rec['sdna']), count=int(rec['count']))


def iter_blocks(f: io.IOBase, geometry: FormatGeometry) -> Iterator[BlockHeader]:
    """Yield every block header up to ENDB, skipping payloads."""
    while True:
        bhead = read_block_header(f, geometry)
        if bhead is None:
            return
        if bhead.size < 0:
            raise CorruptBlock(f'negative size {bhead.size} in {bhead.tag!r} block')
        yield bhead
        skip_bytes(f, bhead.size)
