#!/usr/bin/env python3
"""
Build a 1-bit BMP font atlas from an OTB/BDF bitmap font.

The atlas is the input expected by font_to_bin.py: 128 ASCII glyphs laid
out as two rows of 64 cells with no spacing, codes 0x00-0x3F on the top
row and 0x40-0x7F on the bottom row. Missing glyphs are left blank.
"""

import sys
import struct
import argparse
import re
from pathlib import Path

GLYPHS_PER_ROW = 64
GLYPH_ROWS = 2
GLYPH_COUNT = GLYPHS_PER_ROW * GLYPH_ROWS

# font_to_bin.py cannot extract glyphs wider than this
MAX_GLYPH_WIDTH = 32


def extract_bdf_bitmaps(font_path):
    """Extract glyph bitmaps from a BDF font file."""
    with open(font_path, 'r') as f:
        content = f.read()

    # Get font bounding box for cell size and baseline
    bbox_match = re.search(r'FONTBOUNDINGBOX\s+(\d+)\s+(\d+)\s+(-?\d+)\s+(-?\d+)', content)
    if bbox_match:
        font_width = int(bbox_match.group(1))
        font_height = int(bbox_match.group(2))
        font_offset_x = int(bbox_match.group(3))
        font_offset_y = int(bbox_match.group(4))
    else:
        font_width = 8
        font_height = 8
        font_offset_x = 0
        font_offset_y = 0

    glyphs = {}

    # Parse each character
    char_pattern = re.compile(
        r'STARTCHAR\s+\S+\n'
        r'ENCODING\s+(-?\d+)\n'
        r'(?:.*?\n)*?'
        r'BBX\s+(\d+)\s+(\d+)\s+(-?\d+)\s+(-?\d+)\n'
        r'(?:.*?\n)*?'
        r'BITMAP\n([\dA-Fa-f\n]*?)ENDCHAR',
        re.MULTILINE
    )

    for match in char_pattern.finditer(content):
        encoding = int(match.group(1))
        bbx_width = int(match.group(2))
        bbx_height = int(match.group(3))
        bbx_offset_x = int(match.group(4))
        bbx_offset_y = int(match.group(5))
        bitmap_hex = match.group(6).strip().split('\n')

        if encoding < 0 or encoding >= GLYPH_COUNT:
            continue

        # BDF rows are padded to whole bytes with the leftmost pixel in
        # the MSB; drop the padding so each row is exactly bbx_width bits.
        bitmap = []
        for hex_row in bitmap_hex:
            hex_row = hex_row.strip()
            if hex_row:
                total_bits = len(hex_row) * 4
                bitmap.append(int(hex_row, 16) >> (total_bits - bbx_width))

        glyphs[encoding] = {
            'width': bbx_width,
            'height': bbx_height,
            'offset_x': bbx_offset_x - font_offset_x,
            # Rows from the top of the cell down to the glyph's first row
            'offset_y': (font_height + font_offset_y) - (bbx_height + bbx_offset_y),
            'bitmap': bitmap
        }

    return {
        'width': font_width,
        'height': font_height,
        'glyphs': glyphs
    }


# EBDT image formats: 1/6 pad each row to a byte, 2/5/7 pack rows bit-contiguously.
# Format 5 keeps its metrics in the EBLC index subtable.
BYTE_ALIGNED_FORMATS = (1, 6)
BIT_ALIGNED_FORMATS = (2, 5, 7)


def decode_bitmap_rows(image_data, width, height, byte_aligned):
    """Split EBDT image data into row ints, leftmost pixel in the MSB."""
    bits = []
    for byte in image_data:
        for i in range(7, -1, -1):
            bits.append((byte >> i) & 1)

    stride = ((width + 7) // 8) * 8 if byte_aligned else width

    bitmap = []
    for row in range(height):
        start = row * stride
        row_bits = bits[start:start + width] if start + width <= len(bits) else [0] * width
        row_val = 0
        for bit in row_bits:
            row_val = (row_val << 1) | bit
        bitmap.append(row_val)
    return bitmap


def _bearings(metrics):
    if hasattr(metrics, 'horiBearingX'):
        return metrics.horiBearingX, metrics.horiBearingY
    return metrics.BearingX, metrics.BearingY


def extract_strike_bitmaps(font):
    """Extract glyph bitmaps from the first EBDT/EBLC strike of a TTFont."""
    cmap = font.getBestCmap()
    if not cmap:
        return None

    if 'EBDT' not in font or 'EBLC' not in font:
        return None

    ebdt = font['EBDT']
    eblc = font['EBLC']

    strike = eblc.strikes[0]
    bst = strike.bitmapSizeTable

    subtable_for = {}
    for subtable in strike.indexSubTables:
        for name in subtable.names:
            subtable_for[name] = subtable

    ascent = bst.hori.ascender
    height = ascent - bst.hori.descender
    if height <= 0:
        ascent = height = bst.ppemY

    glyphs = {}

    for char_code in range(GLYPH_COUNT):
        if char_code not in cmap:
            continue

        glyph_name = cmap[char_code]
        glyph_data = ebdt.strikeData[0].get(glyph_name)
        if glyph_data is None:
            continue

        image_format = glyph_data.getFormat()
        if image_format not in BYTE_ALIGNED_FORMATS + BIT_ALIGNED_FORMATS:
            print(f"Warning: skipping {glyph_name}, EBDT format {image_format} not supported",
                  file=sys.stderr)
            continue

        # Touch imageData first, it decompiles the glyph
        image_data = glyph_data.imageData
        if image_format == 5:
            metrics = subtable_for[glyph_name].metrics
        else:
            metrics = glyph_data.metrics

        bearing_x, bearing_y = _bearings(metrics)
        glyphs[char_code] = {
            'width': metrics.width,
            'height': metrics.height,
            'offset_x': bearing_x,
            'offset_y': ascent - bearing_y,
            'bitmap': decode_bitmap_rows(image_data, metrics.width, metrics.height,
                                         image_format in BYTE_ALIGNED_FORMATS)
        }

    width = bst.hori.widthMax
    if width <= 0:
        width = max((g['width'] for g in glyphs.values()), default=8)

    return {
        'width': width,
        'height': height,
        'glyphs': glyphs
    }


def extract_otb_bitmaps(font_path):
    """Extract glyph bitmaps from an OTB font file."""
    from fontTools.ttLib import TTFont

    try:
        font = TTFont(font_path)
    except Exception as e:
        print(f"Warning: Failed to load {font_path}: {e}", file=sys.stderr)
        return None

    try:
        return extract_strike_bitmaps(font)
    finally:
        font.close()


def extract_font_bitmaps(font_path):
    """Extract bitmaps from either BDF or OTB font."""
    font_path = Path(font_path)
    if font_path.suffix.lower() == '.bdf':
        return extract_bdf_bitmaps(font_path)
    else:
        return extract_otb_bitmaps(font_path)


def build_atlas(font_data):
    """
    Lay the glyphs out as a 64x2 atlas.

    Returns (width, height, rows), rows top first, each row an int with
    the leftmost pixel in the MSB.
    """
    cell_w = font_data['width']
    cell_h = font_data['height']
    width = cell_w * GLYPHS_PER_ROW
    height = cell_h * GLYPH_ROWS
    rows = [0] * height

    for char_code, glyph in font_data['glyphs'].items():
        col = char_code % GLYPHS_PER_ROW
        cell_x = col * cell_w
        cell_y = (char_code // GLYPHS_PER_ROW) * cell_h

        for y, row_val in enumerate(glyph['bitmap']):
            py = glyph['offset_y'] + y
            if not 0 <= py < cell_h:
                continue
            for x in range(glyph['width']):
                px = glyph['offset_x'] + x
                # Clip to the cell, never bleed into a neighbour
                if not 0 <= px < cell_w:
                    continue
                if (row_val >> (glyph['width'] - 1 - x)) & 1:
                    rows[cell_y + py] |= 1 << (width - 1 - (cell_x + px))

    return width, height, rows


def write_bmp(output_path, width, height, rows):
    """Write a 1 bpp BMP, bit 1 = ink (white on black)."""
    row_size = ((width + 31) // 32) * 4
    pad_bits = row_size * 8 - width
    palette = struct.pack('<4B4B', 0, 0, 0, 0, 255, 255, 255, 0)
    pixel_offset = 14 + 40 + len(palette)
    image_size = row_size * height

    with open(output_path, 'wb') as f:
        # BITMAPFILEHEADER
        f.write(struct.pack('<2sIHHI', b'BM', pixel_offset + image_size, 0, 0, pixel_offset))
        # BITMAPINFOHEADER
        f.write(struct.pack('<IiiHHIIiiII', 40, width, height, 1, 1, 0,
                            image_size, 2835, 2835, 2, 2))
        f.write(palette)

        # Bottom row first
        for row_val in reversed(rows):
            f.write((row_val << pad_bits).to_bytes(row_size, 'big'))


def main():
    parser = argparse.ArgumentParser(description='Build a 64x2 ASCII font atlas bitmap')
    parser.add_argument('font_path', help='Path to OTB or BDF font file')
    parser.add_argument('-o', '--output', default='font.bmp',
                        help='Output BMP path (default: font.bmp)')
    parser.add_argument('-p', '--preview', action='store_true',
                        help='Print a few sample glyphs')
    args = parser.parse_args()

    font_path = Path(args.font_path)

    print(f"Extracting bitmaps from {font_path}...")
    font_data = extract_font_bitmaps(font_path)

    if not font_data or not font_data['glyphs']:
        print("Error: No bitmap glyphs found in font", file=sys.stderr)
        sys.exit(1)

    if font_data['width'] > MAX_GLYPH_WIDTH:
        print(f"Error: glyphs are {font_data['width']} pixels wide, "
              f"at most {MAX_GLYPH_WIDTH} supported", file=sys.stderr)
        sys.exit(1)

    print(f"Found {len(font_data['glyphs'])} glyphs, size {font_data['width']}x{font_data['height']}")

    width, height, rows = build_atlas(font_data)
    write_bmp(args.output, width, height, rows)
    print(f"Generated {args.output} ({width}x{height})")

    if args.preview:
        print("\nSample glyphs:")
        cell_w = font_data['width']
        cell_h = font_data['height']
        for char_code in [65, 66, 67, 83]:  # A, B, C, S
            if char_code not in font_data['glyphs']:
                continue
            print(f"\n{chr(char_code)}:")
            top = (char_code // GLYPHS_PER_ROW) * cell_h
            shift = width - ((char_code % GLYPHS_PER_ROW) + 1) * cell_w
            for row_val in rows[top:top + cell_h]:
                cell = (row_val >> shift) & ((1 << cell_w) - 1)
                bits = format(cell, f'0{cell_w}b')
                print(''.join(['#' if b == '1' else '.' for b in bits]))


if __name__ == '__main__':
    main()
