#!/usr/bin/env python3
"""

PSF to Verilog character ROM converter

Reads a PC Screen Font (PSF1 or PSF2) and prints a Verilog lookup table
mapping a character code to its glyph raster.

Usage:
  ./psf2verilog.py default8x16.psf > charactermap.v
  ./psf2verilog.py ter-u16n.psf --name font_rom -o font_rom.v
  ./psf2verilog.py broken.psf --table-errors skip -v
"""

import argparse
import enum
import logging
import struct
import sys
from collections import namedtuple

log = logging.getLogger(__name__)

# PSF1: 2-byte magic, then mode and height bytes
PSF1_MAGIC = b'\x36\x04'
PSF1_MODE512 = 0x01
PSF1_MODEHASTAB = 0x02
PSF1_MODEHASSEQ = 0x04
PSF1_SEPARATOR = 0xFFFF
PSF1_STARTSEQ = 0xFFFE

# PSF2: 4-byte magic followed by seven little-endian u32 fields
PSF2_MAGIC = b'\x72\xb5\x4a\x86'
PSF2_HEADER = struct.Struct('<7I')
PSF2_HEADER_SIZE = len(PSF2_MAGIC) + PSF2_HEADER.size
PSF2_HASUNICODETABLE = 0x01
PSF2_MAXVERSION = 0
PSF2_SEPARATOR = 0xFF
PSF2_STARTSEQ = 0xFE

TABLE_ERROR_POLICIES = ('abort', 'skip')


class PSFError(Exception):
    """Base class for everything that can go wrong reading a font."""
    kind = 'error'


class FontReadError(PSFError):
    kind = 'read error'


class UnrecognizedFormatError(PSFError):
    kind = 'not a PSF font'


class UnsupportedVersionError(PSFError):
    kind = 'unsupported version'


class TableDecodeError(PSFError):
    """A mapping-table run is not valid text for the font's encoding."""
    kind = 'bad unicode table'

    def __init__(self, entry, raw, encoding):
        super().__init__(
            f'entry {entry}: {raw.hex()} is not valid {encoding}')
        self.entry = entry
        self.raw = raw
        self.encoding = encoding


class FontVersion(enum.Enum):
    PSF1 = 1
    PSF2 = 2


TableEntry = namedtuple('TableEntry', ['represented', 'sequences'])


class PSFFont:
    """A parsed font: geometry, raw glyph bitmap and optional unicode table."""

    def __init__(self, version, length, charsize, height, width, bitmap,
                 table=None):
        self.version = version
        # Declared glyph count; the bitmap holds length * charsize bytes
        self.length = length
        self.charsize = charsize
        self.height = height
        self.width = width
        self.bitmap = bytes(bitmap)
        self.table = table

    def glyph(self, index):
        """Return the raw raster bytes of glyph `index`."""
        if not 0 <= index < self.length:
            raise IndexError(f'glyph {index} out of range (font has {self.length})')
        start = index * self.charsize
        return self.bitmap[start:start + self.charsize]

    def __repr__(self):
        table = 'none' if self.table is None else len(self.table)
        return (f'PSFFont(version={self.version.name}, length={self.length}, '
                f'charsize={self.charsize}, height={self.height}, '
                f'width={self.width}, table={table})')


def _remaining(fp, what):
    try:
        pos = fp.tell()
        end = fp.seek(0, 2)
        fp.seek(pos)
    except OSError as e:
        raise FontReadError(f'seeking in {what}: {e}') from e
    return end - pos


def _read_exact(fp, size, what):
    left = _remaining(fp, what)
    if size > left:
        raise FontReadError(f'unexpected end of file in {what} '
                            f'(wanted {size} bytes, got {left})')
    try:
        data = fp.read(size)
    except OSError as e:
        raise FontReadError(f'reading {what}: {e}') from e
    if len(data) != size:
        raise FontReadError(f'unexpected end of file in {what} '
                            f'(wanted {size} bytes, got {len(data)})')
    return data


def _read_rest(fp):
    try:
        return fp.read()
    except OSError as e:
        raise FontReadError(f'reading unicode table: {e}') from e


class _ScanState(enum.Enum):
    REPRESENTED = 'represented'
    SEQUENCE = 'sequence'


def _run_bytes(units, version):
    if version is FontVersion.PSF1:
        return struct.pack(f'<{len(units)}H', *units)
    return bytes(units)


def parse_table(data, version, on_table_error='abort'):
    """Decode a unicode mapping table into one TableEntry per glyph.

    PSF1 tables are little-endian UTF-16 code units, PSF2 tables are UTF-8
    bytes. Each entry is closed by a separator; a start-sequence marker
    switches the rest of the entry to combining sequences, which are
    concatenated into `sequences`.
    """
    if on_table_error not in TABLE_ERROR_POLICIES:
        raise ValueError(f'unknown table error policy {on_table_error!r}')

    if version is FontVersion.PSF1:
        if len(data) % 2:
            log.warning('unicode table has a dangling odd byte, ignoring it')
            data = data[:-1]
        units = [u for (u,) in struct.iter_unpack('<H', data)]
        separator, startseq = PSF1_SEPARATOR, PSF1_STARTSEQ
        encoding, codec = 'UTF-16', 'utf-16-le'
    else:
        units = data
        separator, startseq = PSF2_SEPARATOR, PSF2_STARTSEQ
        encoding, codec = 'UTF-8', 'utf-8'

    entries = []
    represented, sequences = '', ''
    state = _ScanState.REPRESENTED
    pending = []

    for unit in units:
        if unit != separator and unit != startseq:
            pending.append(unit)
            continue

        raw = _run_bytes(pending, version)
        try:
            text = raw.decode(codec)
        except UnicodeDecodeError as e:
            err = TableDecodeError(len(entries), raw, encoding)
            if on_table_error == 'abort':
                raise err from e
            log.warning('skipping %s', err)
            text = ''
        pending = []

        if state is _ScanState.REPRESENTED:
            represented = text
        else:
            sequences += text

        if unit == separator:
            entries.append(TableEntry(represented, sequences))
            represented, sequences = '', ''
            state = _ScanState.REPRESENTED
        else:
            state = _ScanState.SEQUENCE

    if pending or state is _ScanState.SEQUENCE:
        log.warning('unicode table ends without a separator, '
                    'dropping the unterminated entry')

    for i, entry in enumerate(entries):
        log.debug('table[%d] = %r seq=%r', i, entry.represented, entry.sequences)
    return entries


def _read_psf1(fp, magic, on_table_error):
    mode = magic[2]
    height = magic[3]
    if mode & ~(PSF1_MODE512 | PSF1_MODEHASTAB | PSF1_MODEHASSEQ):
        log.warning('PSF1 mode 0x%02X has unknown bits set', mode)
    length = 512 if mode & PSF1_MODE512 else 256
    charsize = height

    bitmap = _read_exact(fp, charsize * length, 'glyph bitmap')
    table = None
    if mode & (PSF1_MODEHASTAB | PSF1_MODEHASSEQ):
        table = parse_table(_read_rest(fp), FontVersion.PSF1, on_table_error)

    return PSFFont(FontVersion.PSF1, length, charsize, height, 8,
                   bitmap, table)


def _read_psf2(fp, on_table_error):
    (header_version, header_size, flags,
     length, charsize, height, width) = PSF2_HEADER.unpack(
        _read_exact(fp, PSF2_HEADER.size, 'PSF2 header'))

    if header_size >= PSF2_HEADER_SIZE:
        # Skip the remainder of the header
        try:
            fp.seek(header_size - PSF2_HEADER_SIZE, 1)
        except OSError as e:
            raise FontReadError(f'seeking past header: {e}') from e
    else:
        log.warning('header_size should be >= %d but = %d',
                    PSF2_HEADER_SIZE, header_size)

    bitmap = _read_exact(fp, charsize * length, 'glyph bitmap')
    table = None
    if flags & PSF2_HASUNICODETABLE:
        table = parse_table(_read_rest(fp), FontVersion.PSF2, on_table_error)

    # Checked last, after the whole file has been consumed
    if header_version > PSF2_MAXVERSION:
        raise UnsupportedVersionError(
            f'PSF2 header version {header_version} '
            f'(only {PSF2_MAXVERSION} is supported)')

    return PSFFont(FontVersion.PSF2, length, charsize, height, width,
                   bitmap, table)


def read_psf(fp, on_table_error='abort'):
    """Parse a PSF1 or PSF2 font from a binary, seekable file object."""
    magic = _read_exact(fp, 4, 'magic')

    if magic[:2] == PSF1_MAGIC:
        font = _read_psf1(fp, magic, on_table_error)
    elif magic == PSF2_MAGIC:
        font = _read_psf2(fp, on_table_error)
    else:
        raise UnrecognizedFormatError(f'bad magic {magic.hex()}')

    log.info('%s font: %d glyphs, %d bytes each, %dx%d',
             font.version.name, font.length, font.charsize,
             font.width, font.height)
    if font.table is not None:
        log.info('unicode table: %d entries', len(font.table))
    return font


def load_psf(path, on_table_error='abort'):
    with open(path, 'rb') as f:
        return read_psf(f, on_table_error)


def address_width(glyph_count):
    """Bits needed to address `glyph_count` glyphs: ceil(log2(n))."""
    if glyph_count < 1:
        raise ValueError(f'cannot address {glyph_count} glyphs')
    return (glyph_count - 1).bit_length()


def generate_verilog(charsize, bitmap, module_name='charactermap'):
    """Yield the lines of a Verilog ROM module for the given bitmap."""
    if charsize < 1:
        raise ValueError(f'glyph size must be positive, got {charsize}')
    if not bitmap or len(bitmap) % charsize:
        raise ValueError(f'bitmap of {len(bitmap)} bytes is not a whole '
                         f'number of {charsize}-byte glyphs')

    length = len(bitmap) // charsize
    # A single glyph still gets a 1-bit address port
    input_width = max(address_width(length), 1)
    output_width = charsize * 8

    yield (f'module {module_name} ( input wire clk, '
           f'input wire [{input_width - 1}:0] character, '
           f'output reg [{output_width - 1}:0] characterraster );')
    yield 'always @(posedge clk) begin case (character)'
    for i in range(length):
        chunk = bitmap[i * charsize:(i + 1) * charsize]
        raster = ''.join(f'{b:02X}' for b in chunk)
        yield (f"    {input_width}'b{i:0{input_width}b} : "
               f"characterraster = {output_width}'h{raster};")
    yield '    default : characterraster = 0;'
    yield 'endcase end'
    yield 'endmodule'


def write_verilog(font, out, module_name='charactermap'):
    """Write the Verilog ROM for `font` to the text stream `out`."""
    count = 0
    for line in generate_verilog(font.charsize, font.bitmap, module_name):
        out.write(line + '\n')
        count += 1
    return count


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog='psf2verilog',
        description='Convert a PSF font to a Verilog character ROM')
    parser.add_argument('font', nargs='?', help='Input PSF1/PSF2 file')
    parser.add_argument('-o', '--output', help='Output file (default: stdout)')
    parser.add_argument('--name', default='charactermap',
                        help='Verilog module name')
    parser.add_argument('--table-errors', choices=TABLE_ERROR_POLICIES,
                        default='abort',
                        help='What to do with undecodable unicode table entries')
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='More diagnostics on stderr (repeatable)')

    args = parser.parse_args(argv)

    if args.font is None:
        print(f'Usage: {parser.prog} <PSF_FONT_FILENAME>', file=sys.stderr)
        return 0

    level = [logging.WARNING, logging.INFO, logging.DEBUG][min(args.verbose, 2)]
    logging.basicConfig(level=level, format='%(levelname)s: %(message)s')

    try:
        font = load_psf(args.font, args.table_errors)
    except PSFError as e:
        print(f'{parser.prog}: error: {e.kind}: {e}', file=sys.stderr)
        return 1
    except OSError as e:
        print(f'{parser.prog}: error: cannot open {args.font}: {e.strerror}',
              file=sys.stderr)
        return 1

    if not font.bitmap:
        print(f'{parser.prog}: error: {args.font} has no glyph data',
              file=sys.stderr)
        return 1

    if args.output:
        try:
            f = open(args.output, 'w')
        except OSError as e:
            print(f'{parser.prog}: error: cannot open {args.output}: {e.strerror}',
                  file=sys.stderr)
            return 1
        with f:
            lines = write_verilog(font, f, args.name)
        log.info('Generated: %s (%d lines)', args.output, lines)
    else:
        write_verilog(font, sys.stdout, args.name)
    return 0


if __name__ == '__main__':
    sys.exit(main())
