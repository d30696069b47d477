import io
import struct

import pytest

import psf2verilog


def psf1_bytes(mode, height, bitmap, table=b''):
    return psf2verilog.PSF1_MAGIC + bytes([mode, height]) + bitmap + table


def psf2_bytes(bitmap, length, charsize, height=None, width=8, flags=0,
               version=0, header_size=32, table=b'', padding=None):
    if height is None:
        height = charsize
    header = psf2verilog.PSF2_MAGIC + struct.pack(
        '<7I', version, header_size, flags, length, charsize, height, width)
    if padding is None:
        padding = b'\0' * max(header_size - 32, 0)
    return header + padding + bitmap + table


@pytest.fixture
def psf1_file():
    def make(*args, **kwargs):
        return io.BytesIO(psf1_bytes(*args, **kwargs))
    return make


@pytest.fixture
def psf2_file():
    def make(*args, **kwargs):
        return io.BytesIO(psf2_bytes(*args, **kwargs))
    return make
