"""
Tests for the command-line entry point.
"""

import json

import pytest

import main
from core.config import ConversionConfig
from core.models import ScaleMode


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    """Keep logs and saved defaults out of the user's home directory."""
    monkeypatch.setattr(main, "LOG_FILE", tmp_path / "logs" / "pixelframe.log")
    monkeypatch.setattr(main, "get_conversion_defaults", lambda: ConversionConfig())


@pytest.fixture
def png_file(tmp_path, make_png):
    path = tmp_path / "red.png"
    path.write_bytes(make_png((255, 0, 0), size=(20, 20)))
    return path


class TestMain:
    def test_writes_json(self, tmp_path, png_file):
        out = tmp_path / "art.json"
        code = main.main([str(png_file), "-o", str(out), "--width", "4", "--height", "4", "--title", "Red"])

        assert code == 0
        payload = json.loads(out.read_text(encoding="utf-8"))
        assert payload["width"] == 4
        assert payload["metadata"]["title"] == "Red"
        assert "#ff0000" in payload["palette"]

    def test_static_preview(self, tmp_path, png_file, capsys):
        preview = tmp_path / "still.gif"
        code = main.main([str(png_file), "--width", "4", "--height", "4", "--preview", str(preview)])

        assert code == 0
        assert json.loads(capsys.readouterr().out)["width"] == 4
        assert preview.exists()

    def test_prints_to_stdout(self, png_file, capsys):
        assert main.main([str(png_file), "--width", "2", "--height", "2"]) == 0
        payload = json.loads(capsys.readouterr().out)
        assert len(payload["pixels"]) == 2

    def test_resolved_colors(self, png_file, capsys):
        main.main([str(png_file), "--width", "2", "--height", "2", "--colors-resolved"])
        payload = json.loads(capsys.readouterr().out)
        assert payload["pixels"] == [["#ff0000", "#ff0000"], ["#ff0000", "#ff0000"]]

    def test_animation_with_preview(self, tmp_path, make_gif, capsys):
        source = tmp_path / "anim.gif"
        source.write_bytes(make_gif([(255, 0, 0), (0, 0, 255)], [100, 300]))
        preview = tmp_path / "preview.gif"

        code = main.main([str(source), "--width", "4", "--height", "4", "--preview", str(preview), "--scale", "2"])

        assert code == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["type"] == "pixel_animation"
        assert [f["duration"] for f in payload["frames"]] == [100, 300]
        assert preview.exists()

    def test_format_preset(self, png_file, capsys):
        assert main.main([str(png_file), "--format", "32x16"]) == 0
        payload = json.loads(capsys.readouterr().out)
        assert (payload["width"], payload["height"]) == (32, 16)

    def test_format_preset_with_explicit_height(self, png_file, capsys):
        assert main.main([str(png_file), "--format", "32x16", "--height", "8"]) == 0
        payload = json.loads(capsys.readouterr().out)
        assert (payload["width"], payload["height"]) == (32, 8)

    def test_text(self, capsys):
        code = main.main(["--text", "A", "--format", "32x32", "--text-color", "#00ff00", "--title", "A"])

        assert code == 0
        payload = json.loads(capsys.readouterr().out)
        assert (payload["width"], payload["height"]) == (32, 32)
        assert payload["metadata"]["title"] == "A"

    def test_nothing_to_convert(self, capsys):
        assert main.main([]) == 2
        assert "--text" in capsys.readouterr().err

    def test_missing_source(self, tmp_path, capsys):
        assert main.main([str(tmp_path / "missing.png")]) == 1
        assert "source_load_failed" in capsys.readouterr().err

    def test_invalid_options(self, png_file, capsys):
        assert main.main([str(png_file), "--colors", "0"]) == 2
        assert "max_colors" in capsys.readouterr().err


def test_config_from_args_overrides_only_given_values():
    args = main.build_parser().parse_args(["x.png", "--mode", "fill", "--max-frames", "3"])
    config = main.config_from_args(args, ConversionConfig(max_colors=8))
    assert config.scale_mode == ScaleMode.FILL
    assert config.max_frames == 3
    assert config.max_colors == 8
    assert config.dither is False
