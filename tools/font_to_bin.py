#!/usr/bin/env python3
"""
Convert a 1-bit BMP font atlas to a .bin file for Verilog $readmemb.

The atlas holds the 128 ASCII characters as two rows of 64 glyphs with
no spacing between them: codes 0x00-0x3F on the top row, 0x40-0x7F on
the bottom row. Glyph size is derived from the image size.

Output is one line per glyph scanline, charWidth characters of '0'/'1',
MSB (leftmost pixel) first. The first line is the top scanline of
character 0x00 and the last line is the bottom scanline of 0x7F.

Characters may not be wider than 32 pixels.

Usage:
    python3 font_to_bin.py font.bmp [-o font.bin]
"""

import sys
import struct
import argparse
from dataclasses import dataclass

DEFAULT_OUTPUT = "font.bin"

GLYPHS_PER_ROW = 64
GLYPH_ROWS = 2
GLYPH_COUNT = GLYPHS_PER_ROW * GLYPH_ROWS

# Extraction word size; also the widest glyph we can extract
WORD_BITS = 32

# BMP header fields we rely on
PIXEL_OFFSET_POS = 0x0A
WIDTH_POS = 0x12
HEIGHT_POS = 0x16
BIT_COUNT_POS = 0x1C

# Process exit codes. argparse's own usage code (2) is never returned.
EXIT_INPUT = 1
EXIT_ALLOCATION = 3
EXIT_FORMAT = 4
EXIT_PRECONDITION = 5
EXIT_OUTPUT = 6


class FontToBinError(Exception):
    """Base class for conversion failures. Carries the process exit code."""
    exit_code = EXIT_INPUT


class FontIOError(FontToBinError):
    """A file could not be opened, read or written."""

    def __init__(self, message, exit_code=EXIT_INPUT):
        super().__init__(message)
        self.exit_code = exit_code


class FormatError(FontToBinError, ValueError):
    """Header or pixel data is shorter than required, or not 1 bpp."""
    exit_code = EXIT_FORMAT


class AllocationError(FontToBinError, MemoryError):
    """The pixel buffer could not be sized."""
    exit_code = EXIT_ALLOCATION


class PreconditionViolation(FontToBinError, ValueError):
    """Geometry, glyph index or word access outside what the atlas allows."""
    exit_code = EXIT_PRECONDITION


@dataclass
class SourceImage:
    """Header fields of the atlas bitmap."""
    pixel_data_offset: int
    width: int
    height: int

    @property
    def char_width(self) -> int:
        return self.width // GLYPHS_PER_ROW

    @property
    def char_height(self) -> int:
        return self.height // GLYPH_ROWS

    @property
    def bytes_per_line(self) -> int:
        return self.char_width * GLYPHS_PER_ROW // 8

    @property
    def words_per_line(self) -> int:
        return self.bytes_per_line // 4


def _read_field(f, pos, name, fmt='<I'):
    f.seek(pos)
    data = f.read(4)
    if len(data) < 4:
        raise FormatError(f"truncated header: could not read {name} at 0x{pos:02X}")
    return struct.unpack(fmt, data)[0]


def read_header(f) -> SourceImage:
    """
    Read the pixel data offset, width and height from a BMP header.

    On success the stream is left at the start of the pixel data.
    """
    pixel_data_offset = _read_field(f, PIXEL_OFFSET_POS, "pixel data offset")
    width = _read_field(f, WIDTH_POS, "width")
    height = _read_field(f, HEIGHT_POS, "height", '<i')
    if height < 0:
        raise FormatError(f"top-down bitmaps (height {height}) are not supported")

    f.seek(BIT_COUNT_POS)
    data = f.read(2)
    if len(data) < 2:
        raise FormatError(f"truncated header: could not read bit count at 0x{BIT_COUNT_POS:02X}")
    bit_count = struct.unpack('<H', data)[0]
    if bit_count != 1:
        raise FormatError(f"expected a 1 bpp bitmap, got {bit_count} bpp")

    f.seek(pixel_data_offset)
    return SourceImage(pixel_data_offset, width, height)


def check_geometry(image: SourceImage, word_bits=WORD_BITS):
    """Reject images that do not hold a 64x2 atlas of extractable glyphs."""
    # A multiple of 64 pixels also keeps every scanline word aligned
    if image.width == 0 or image.width % GLYPHS_PER_ROW:
        raise PreconditionViolation(
            f"image width {image.width} is not a positive multiple of {GLYPHS_PER_ROW}")
    if image.height == 0 or image.height % GLYPH_ROWS:
        raise PreconditionViolation(
            f"image height {image.height} is not a positive multiple of {GLYPH_ROWS}")
    if image.char_width > word_bits:
        raise PreconditionViolation(
            f"characters are {image.char_width} pixels wide, at most {word_bits} supported")


def swap_endian32(x):
    """Reverse the byte order of a 32-bit word."""
    return (((x >> 24) & 0x000000FF) |
            ((x << 8) & 0x00FF0000) |
            ((x >> 8) & 0x0000FF00) |
            ((x << 24) & 0xFF000000))


def normalize(f, width, height):
    """
    Read the pixel rows at the current position into a top-down word buffer.

    BMP rows are stored bottom row first, so the first row read lands at
    the last row of the buffer. Words are read little-endian and byte
    swapped so bit 31 is the leftmost pixel of each 32-pixel span.
    """
    words_per_line = (width // GLYPHS_PER_ROW) * GLYPHS_PER_ROW // 8 // 4
    row_bytes = words_per_line * 4

    try:
        buffer = [0] * (words_per_line * height)
    except (MemoryError, OverflowError) as e:
        raise AllocationError(f"could not allocate {words_per_line * height} words") from e

    for i in range(height - 1, -1, -1):
        data = f.read(row_bytes)
        if len(data) < row_bytes:
            raise FormatError(
                f"truncated pixel data: row {height - 1 - i} has {len(data)} of {row_bytes} bytes")
        words = struct.unpack(f'<{words_per_line}I', data)
        base = i * words_per_line
        for j, word in enumerate(words):
            buffer[base + j] = swap_endian32(word)

    return buffer


def glyph_start_bit(glyph_index, char_width, char_height, words_per_line, word_bits=WORD_BITS):
    """Bit position of a glyph's top-left pixel in the flattened buffer."""
    if not 0 <= glyph_index < GLYPH_COUNT:
        raise PreconditionViolation(f"glyph index {glyph_index} outside 0..{GLYPH_COUNT - 1}")
    half = 0 if glyph_index < GLYPHS_PER_ROW else char_height * words_per_line * word_bits
    return (glyph_index % GLYPHS_PER_ROW) * char_width + half


def _word(buffer, index):
    if not 0 <= index < len(buffer):
        raise PreconditionViolation(
            f"word {index} is outside the {len(buffer)} word pixel buffer")
    return buffer[index]


def extract_scanline(buffer, bit_pos, char_width, word_bits=WORD_BITS):
    """
    Extract char_width bits starting at bit_pos, MSB first.

    A span may cross into the next word; char_width is limited to
    word_bits so a span never touches more than two words.
    """
    if not 0 < char_width <= word_bits:
        raise PreconditionViolation(
            f"scanline width {char_width} outside 1..{word_bits}")

    word_index = bit_pos // word_bits
    # Counted from the MSB
    bit_offset = bit_pos % word_bits

    if bit_offset + char_width <= word_bits:
        mask = (1 << char_width) - 1
        return (_word(buffer, word_index) >> (word_bits - char_width - bit_offset)) & mask

    # Tail of the first word, then head of the second
    high_bits = word_bits - bit_offset
    low_bits = char_width - high_bits
    first = _word(buffer, word_index) & ((1 << high_bits) - 1)
    second_mask = ((1 << low_bits) - 1) << (word_bits - low_bits)
    second = (_word(buffer, word_index + 1) & second_mask) >> (word_bits - low_bits)
    return (first << low_bits) | second


def extract_glyph(buffer, glyph_index, char_width, char_height, words_per_line,
                  word_bits=WORD_BITS):
    """
    Extract every scanline of one glyph, top first.

    Scanlines are char_width bits wide with the leftmost pixel in the MSB.
    char_width may not exceed word_bits.
    """
    bits = glyph_start_bit(glyph_index, char_width, char_height, words_per_line, word_bits)
    stride = words_per_line * word_bits
    return [extract_scanline(buffer, bits + r * stride, char_width, word_bits)
            for r in range(char_height)]


def to_binary(value, width):
    """Render the low `width` bits of value as '0'/'1', MSB first."""
    return ''.join('1' if (value >> i) & 1 else '0' for i in range(width - 1, -1, -1))


def emit_scanline(value, width, out):
    out.write(to_binary(value, width))
    out.write("\n")


def convert(bmp_path, out_path=DEFAULT_OUTPUT):
    """
    Convert an atlas bitmap to a $readmemb file.

    All glyphs are extracted before the output is opened, so a bad input
    never leaves an output file behind.
    """
    try:
        font = open(bmp_path, 'rb')
    except OSError as e:
        raise FontIOError(f"could not open source font file {bmp_path}: {e.strerror or e}", EXIT_INPUT) from e

    with font:
        try:
            image = read_header(font)
            check_geometry(image)
            buffer = normalize(font, image.width, image.height)
        except OSError as e:
            raise FontIOError(f"could not read source font file {bmp_path}: {e.strerror or e}", EXIT_INPUT) from e

    glyphs = [extract_glyph(buffer, code, image.char_width, image.char_height,
                            image.words_per_line)
              for code in range(GLYPH_COUNT)]

    try:
        with open(out_path, 'w', newline='\n') as out:
            for character in glyphs:
                for scanline in character:
                    emit_scanline(scanline, image.char_width, out)
    except OSError as e:
        raise FontIOError(f"could not write destination bin file {out_path}: {e.strerror or e}", EXIT_OUTPUT) from e

    return image


class _ArgumentParser(argparse.ArgumentParser):
    """Reports usage errors with the input exit code instead of 2."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(EXIT_INPUT, f"{self.prog}: error: {message}\n")


def main(argv=None):
    parser = _ArgumentParser(
        description='Convert a 64x2 ASCII font atlas bitmap to a $readmemb .bin file')
    parser.add_argument('bmp_path', help='Path to the 1 bpp font atlas (.bmp)')
    parser.add_argument('-o', '--output', default=DEFAULT_OUTPUT,
                        help=f'Output .bin path (default: {DEFAULT_OUTPUT})')
    args = parser.parse_args(argv)

    try:
        convert(args.bmp_path, args.output)
    except FontToBinError as e:
        print(f"Error: {e}", file=sys.stderr)
        return e.exit_code
    return 0


if __name__ == '__main__':
    sys.exit(main())
