import random

import pytest

from make_font_atlas import write_bmp


def random_rows(char_width, char_height, seed=0):
    """Random top-down pixel rows for a 64x2 atlas of the given cell size."""
    rng = random.Random(seed)
    width = char_width * 64
    return [rng.getrandbits(width) for _ in range(char_height * 2)]


def expected_glyph(rows, code, char_width, char_height):
    """Cut one glyph out of the pixel rows directly, no word arithmetic."""
    width = char_width * 64
    top = (code // 64) * char_height
    shift = width - ((code % 64) + 1) * char_width
    mask = (1 << char_width) - 1
    return [(rows[top + r] >> shift) & mask for r in range(char_height)]


@pytest.fixture
def atlas_file(tmp_path):
    """Factory writing a random atlas BMP; returns (path, rows)."""
    def make(char_width, char_height, seed=0, name='atlas.bmp'):
        rows = random_rows(char_width, char_height, seed)
        path = tmp_path / name
        write_bmp(path, char_width * 64, char_height * 2, rows)
        return path, rows
    return make
