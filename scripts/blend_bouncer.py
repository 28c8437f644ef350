# VMD Motion Optimizer by Barış Keser (barkeser2002)
# License: GNU General Public License v3.0 (GPL-3.0)
# See LICENSE for details.

import argparse
import io
import json
import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from tqdm import tqdm

from blend_io import (
    BLEND_MAGIC,
    HEADER_SIZE,
    SCENE_FIELDS,
    SCENE_TAG,
    VERSION_OFFSET,
    VERSION_SIZE,
    BlendDecodeError,
    BlendEncodingError,
    BlendFileReader,
    CorruptBlock,
    FormatGeometry,
    InvalidMagic,
    TruncatedBlock,
    TruncatedHeader,
    field_dtype,
    read_block_header,
    read_exact,
    read_fields,
    skip_bytes,
)

logger = logging.getLogger(__name__)


# ---------- Veri modeli ----------

@dataclass(frozen=True)
class FrameRange:
    start: int
    end: int

    @property
    def count(self) -> int:
        # not clamped, a broken file may give a negative count
        return self.end - self.start

    def to_dict(self) -> dict:
        return {'start': self.start, 'end': self.end, 'count': self.count}


@dataclass(frozen=True)
class SceneRecord:
    name: str
    frames: FrameRange
    version: str


Scenes = Dict[str, SceneRecord]


# ---------- Başlık ----------

def format_version(raw: bytes) -> str:
    """b'279' -> '2.79'"""
    if len(raw) != VERSION_SIZE:
        raise TruncatedHeader(f'version needs {VERSION_SIZE} bytes, got {len(raw)}')
    try:
        digits = raw.decode('ascii')
    except UnicodeDecodeError as e:
        raise BlendEncodingError(f'version bytes are not text: {raw!r}') from e
    return digits[0] + '.' + digits[1:]


def _check_magic(f: io.IOBase) -> bytes:
    head = read_exact(f, len(BLEND_MAGIC), TruncatedHeader)
    if head != BLEND_MAGIC:
        raise InvalidMagic(f'not a blend file, header starts with {head!r}')
    return head


def inspect_stream(f: io.IOBase) -> Tuple[FormatGeometry, str]:
    head = _check_magic(f) + read_exact(f, HEADER_SIZE - len(BLEND_MAGIC), TruncatedHeader)
    geometry = FormatGeometry.from_header(head)
    version = format_version(head[VERSION_OFFSET:VERSION_OFFSET + VERSION_SIZE])
    logger.debug('geometry %s, version %s', geometry, version)
    return geometry, version


def check_blend(path: str) -> None:
    """Raise if `path` is not a blend file. Only the magic is looked at."""
    with BlendFileReader(path) as f:
        _check_magic(f)


def is_blend(path: str) -> bool:
    try:
        check_blend(path)
    except BlendDecodeError:
        return False
    return True


def inspect(path: str) -> Tuple[FormatGeometry, str]:
    with BlendFileReader(path) as f:
        return inspect_stream(f)


def get_version(path: str) -> str:
    return inspect(path)[1]


# ---------- Blok tarama ----------

def _scene_record(rec: np.void, version: str, strict_names: bool) -> Optional[SceneRecord]:
    raw = bytes(rec['name'])
    if b'\x00' in raw:
        raw = raw.split(b'\x00', 1)[0]
    try:
        name = raw.decode('utf-8')
    except UnicodeDecodeError as e:
        if strict_names:
            raise BlendEncodingError(f'scene name is not UTF-8: {raw!r}') from e
        logger.warning('skipping scene with non UTF-8 name %r', raw)
        return None
    frames = FrameRange(start=int(rec['start']), end=int(rec['end']))
    return SceneRecord(name=name, frames=frames, version=version)


def walk(f: io.IOBase, geometry: FormatGeometry, version: str,
         strict_names: bool = False) -> Scenes:
    """
    Scan the blocks after the file header and collect every REND block.

    `f` must sit right after the 12 byte header. Stops at ENDB or when the
    stream runs out at a block boundary. A block cut in half raises
    TruncatedBlock carrying the scenes found so far.
    """
    scenes: Scenes = {}
    scene_size = field_dtype(SCENE_FIELDS, geometry).itemsize
    blocks = 0
    try:
        while True:
            bhead = read_block_header(f, geometry)
            if bhead is None:
                break
            blocks += 1
            if bhead.size < 0:
                raise CorruptBlock(f'negative size {bhead.size} in {bhead.tag!r} block')
            left = bhead.size
            if bhead.tag == SCENE_TAG:
                if left < scene_size:
                    raise CorruptBlock(f'{SCENE_TAG!r} block holds {left} bytes, needs {scene_size}')
                rec = read_fields(f, SCENE_FIELDS, geometry)
                left -= scene_size
                record = _scene_record(rec, version, strict_names)
                if record is not None:
                    # aynı isim: sonraki kazanır
                    scenes[record.name] = record
            skip_bytes(f, left)
    except TruncatedBlock as e:
        e.scenes = scenes
        raise
    logger.debug('walked %d blocks, %d scenes', blocks, len(scenes))
    return scenes


def decode(path: str, strict_names: bool = False) -> Tuple[str, Scenes]:
    with BlendFileReader(path) as f:
        geometry, version = inspect_stream(f)
        scenes = walk(f, geometry, version, strict_names=strict_names)
    return version, scenes


def parse_scenes(path: str, strict_names: bool = False) -> Scenes:
    return decode(path, strict_names=strict_names)[1]


# ---------- Toplu kontrol ----------

@dataclass
class BlendReport:
    path: str
    valid: bool
    version: Optional[str] = None
    scenes: Scenes = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'path': self.path,
            'valid': self.valid,
            'version': self.version,
            'scenes': {name: rec.frames.to_dict() for name, rec in self.scenes.items()},
            'error': self.error,
        }


def check_blend_file(path: str, strict_names: bool = False) -> BlendReport:
    try:
        check_blend(path)
    except BlendDecodeError as e:
        return BlendReport(path=path, valid=False, error=str(e))
    try:
        version, scenes = decode(path, strict_names=strict_names)
    except BlendDecodeError as e:
        logger.debug('decode failed for %s', path, exc_info=True)
        return BlendReport(path=path, valid=True, error=f'{type(e).__name__}: {e}')
    return BlendReport(path=path, valid=True, version=version, scenes=scenes)


def check_blend_files(paths: Sequence[str],
                      strict_names: bool = False,
                      progress: Optional[Callable[[str, int, int], None]] = None) -> List[BlendReport]:
    """
    One report per path, in order. A broken file only affects its own report.
    - progress: (section, i, total) callback; without it tqdm draws on stderr.
    """
    reports: List[BlendReport] = []
    if progress is None:
        iterator = tqdm(paths, desc='Blends', disable=len(paths) < 2)
    else:
        iterator = paths
    for idx, path in enumerate(iterator, start=1):
        reports.append(check_blend_file(path, strict_names=strict_names))
        if progress is not None:
            progress('Blends', idx, len(paths))
    return reports


# ---------- Sürüm ----------

def resource_path(name: str) -> Optional[str]:
    # PyInstaller (MEIPASS) ve kaynak dizinlerini dene
    candidates = []
    base = os.path.dirname(os.path.abspath(__file__))
    candidates.append(os.path.join(base, name))
    candidates.append(os.path.join(os.path.dirname(base), name))
    if getattr(sys, '_MEIPASS', None):
        candidates.insert(0, os.path.join(sys._MEIPASS, name))  # type: ignore[attr-defined]
    for p in candidates:
        if os.path.exists(p):
            return p
    return None


def read_version() -> str:
    p = resource_path('version.txt')
    if p:
        try:
            with open(p, 'r', encoding='utf-8') as f:
                return f.read().strip()
        except OSError:
            pass
    try:
        from importlib.metadata import PackageNotFoundError, version
        return version('blend-bouncer')
    except PackageNotFoundError:
        return 'dev'


# ---------- CLI ----------

def format_report(report: BlendReport) -> str:
    if not report.valid:
        return f' ✖ {report.path}  seems not to be a blend file ({report.error})\n'
    lines = [f' ✔ {report.path}']
    if report.error:
        lines.append(f"Error: Couldn't parse file: {report.error}")
    for name, rec in sorted(report.scenes.items()):
        frames = rec.frames
        lines.append(f'Version:      {rec.version}')
        lines.append(f'Scene Name:   {name}')
        lines.append(f'Frame Range:  {frames.start}-{frames.end} ({frames.count} in total)')
        lines.append('')
    if not report.scenes:
        lines.append('')
    return '\n'.join(lines)


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(
        prog='blend-bouncer',
        description='Checks whether files are valid .blend files and prints version, '
                    'scene names and frame ranges without running Blender.')
    ap.add_argument('blendfiles', nargs='+', help='.blend dosya yolları')
    ap.add_argument('--json', action='store_true', help='sonuçları JSON olarak yaz')
    group = ap.add_mutually_exclusive_group()
    group.add_argument('--only-valid', action='store_true', help='sadece geçerli dosyaları göster')
    group.add_argument('--only-invalid', action='store_true', help='sadece geçersiz dosyaları göster')
    ap.add_argument('--strict-names', action='store_true',
                    help='UTF-8 olmayan sahne adında dosyayı hatalı say (varsayılan: sahneyi atla)')
    ap.add_argument('-v', '--verbose', action='store_true', help='debug log')
    ap.add_argument('--version', action='version', version=f'%(prog)s {read_version()}')
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format='%(levelname)s %(name)s: %(message)s')

    reports = check_blend_files(args.blendfiles, strict_names=args.strict_names)

    shown = reports
    if args.only_valid:
        shown = [r for r in reports if r.valid]
    elif args.only_invalid:
        shown = [r for r in reports if not r.valid]

    if args.json:
        print(json.dumps([r.to_dict() for r in shown], ensure_ascii=False, indent=2))
    else:
        for r in shown:
            print(format_report(r))

    return 0 if all(r.valid for r in reports) else 1


if __name__ == '__main__':
    sys.exit(main())
