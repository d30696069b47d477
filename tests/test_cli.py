import pytest

import psf2verilog
from conftest import psf1_bytes, psf2_bytes


@pytest.fixture
def font_path(tmp_path):
    path = tmp_path / 'font.psf'
    path.write_bytes(psf2_bytes(b'\x01\x02\x03\x04', 2, 2))
    return str(path)


def test_no_argument_prints_usage(capsys):
    assert psf2verilog.main([]) == 0
    out, err = capsys.readouterr()
    assert out == ''
    assert 'Usage: psf2verilog <PSF_FONT_FILENAME>' in err


def test_writes_rom_to_stdout(font_path, capsys):
    assert psf2verilog.main([font_path]) == 0
    out, _ = capsys.readouterr()
    assert out.splitlines()[2] == "    1'b0 : characterraster = 16'h0102;"
    assert out.endswith('endmodule\n')


def test_writes_rom_to_file(font_path, tmp_path, capsys):
    output = tmp_path / 'rom.v'
    assert psf2verilog.main([font_path, '-o', str(output), '--name', 'rom']) == 0
    assert capsys.readouterr().out == ''
    assert output.read_text().startswith('module rom ( ')


def test_not_a_font(tmp_path, capsys):
    path = tmp_path / 'zeros.bin'
    path.write_bytes(bytes(64))
    output = tmp_path / 'rom.v'
    assert psf2verilog.main([str(path), '-o', str(output)]) == 1
    out, err = capsys.readouterr()
    assert out == ''
    assert 'error: not a PSF font' in err
    assert not output.exists()


def test_missing_file(tmp_path, capsys):
    assert psf2verilog.main([str(tmp_path / 'nope.psf')]) == 1
    assert 'cannot open' in capsys.readouterr().err


def test_unsupported_version(tmp_path, capsys):
    path = tmp_path / 'v1.psf'
    path.write_bytes(psf2_bytes(bytes(2), 2, 1, version=1))
    assert psf2verilog.main([str(path)]) == 1
    assert 'error: unsupported version' in capsys.readouterr().err


def test_table_errors_policy(tmp_path, capsys):
    path = tmp_path / 'bad.psf'
    path.write_bytes(psf1_bytes(0x02, 1, bytes(256), b'\x00\xd8\xff\xff'))

    assert psf2verilog.main([str(path)]) == 1
    assert 'error: bad unicode table' in capsys.readouterr().err

    assert psf2verilog.main([str(path), '--table-errors', 'skip']) == 0
    assert capsys.readouterr().out.count('characterraster = 8') == 256


def test_font_without_glyphs(tmp_path, capsys):
    path = tmp_path / 'empty.psf'
    path.write_bytes(psf2_bytes(b'', 0, 8))
    assert psf2verilog.main([str(path)]) == 1
    out, err = capsys.readouterr()
    assert out == ''
    assert 'has no glyph data' in err


def test_output_cannot_be_opened(font_path, tmp_path, capsys):
    output = tmp_path / 'missing' / 'rom.v'
    assert psf2verilog.main([font_path, '-o', str(output)]) == 1
    out, err = capsys.readouterr()
    assert out == ''
    assert f'cannot open {output}' in err


def test_zero_glyph_size(tmp_path, capsys):
    path = tmp_path / 'zero.psf'
    path.write_bytes(psf2_bytes(b'', 4, 0))
    assert psf2verilog.main([str(path)]) == 1
    assert 'has no glyph data' in capsys.readouterr().err


def test_huge_declared_bitmap(tmp_path, capsys):
    path = tmp_path / 'huge.psf'
    path.write_bytes(psf2_bytes(bytes(64), 0xFFFFFFFF, 0xFFFFFFFF, height=16))
    assert psf2verilog.main([str(path)]) == 1
    assert 'error: read error: unexpected end of file' in capsys.readouterr().err
