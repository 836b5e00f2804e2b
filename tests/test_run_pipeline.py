"""Tests for the command-line entry point."""
from PIL import Image

from run_pipeline import EXIT_CACHE_ERROR, EXIT_CONFIG_ERROR, main


def test_extract_command(tmp_path, make_photo):
    pages = tmp_path / "pages"
    pages.mkdir()
    page = Image.new("RGB", (600, 400), (255, 255, 255))
    page.paste(make_photo(1, (200, 150)), (50, 60))
    page.save(pages / "p1.png")

    code = main(["extract", str(pages), str(tmp_path / "out"), "--debug", str(tmp_path / "dbg")])

    assert code == 0
    assert (tmp_path / "out" / "p1-00.png").exists()
    assert (tmp_path / "dbg" / "p1-patches.png").exists()


def test_extract_missing_input_is_config_error(tmp_path):
    assert main(["extract", str(tmp_path / "missing"), str(tmp_path / "out")]) == EXIT_CONFIG_ERROR


def test_invalid_settings_is_config_error(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("DECOLLAGE_BLUR_KERNEL_SIZE", "4")
    code = main(["extract", str(tmp_path), str(tmp_path / "out")])
    assert code == EXIT_CONFIG_ERROR
    assert "Invalid configuration" in capsys.readouterr().err


def test_invalid_workers_flag_is_config_error(tmp_path):
    assert main(["extract", str(tmp_path), str(tmp_path / "out"), "--workers", "0"]) == EXIT_CONFIG_ERROR


def test_match_command_prints_report(tmp_path, image_dirs, make_photo, capsys):
    queries, candidates = image_dirs
    original = make_photo(5, (640, 480))
    original.save(candidates / "orig.png")
    make_photo(6, (640, 480)).save(candidates / "other.png")
    original.resize((160, 120)).save(queries / "thumb.png")

    code = main([
        "match",
        "--cache", str(tmp_path / "cache"),
        "--fullsize", str(candidates),
        "--thumbnail", str(queries),
        "--output", str(tmp_path / "out"),
        "--show-distance",
    ])

    assert code == 0
    out = capsys.readouterr().out.splitlines()
    assert out[0].startswith("thumb.png -> orig.png (distance ")
    assert any((tmp_path / "cache").rglob("*.json"))
    assert (tmp_path / "out" / "orig.png").exists()


def test_match_with_unusable_cache_is_cache_error(tmp_path, image_dirs):
    queries, candidates = image_dirs
    blocker = tmp_path / "cache"
    blocker.write_text("occupied")
    code = main([
        "match", "--cache", str(blocker),
        "--fullsize", str(candidates), "--thumbnail", str(queries),
    ])
    assert code == EXIT_CACHE_ERROR


def test_match_missing_input_leaves_no_cache_behind(tmp_path, image_dirs):
    queries, _ = image_dirs
    cache_dir = tmp_path / "cache"
    code = main([
        "match", "--cache", str(cache_dir),
        "--fullsize", str(tmp_path / "fullsiz"), "--thumbnail", str(queries),
    ])
    assert code == EXIT_CONFIG_ERROR
    assert not cache_dir.exists()


def test_extract_output_that_is_a_file_is_config_error(tmp_path):
    out = tmp_path / "out"
    out.write_text("occupied")
    assert main(["extract", str(tmp_path), str(out)]) == EXIT_CONFIG_ERROR
