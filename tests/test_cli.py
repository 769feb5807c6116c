import pytest
from click.testing import CliRunner

from ingest_tool.cli import cli
from shared.database import CatalogDatabase


@pytest.fixture
def env(monkeypatch, tmp_path):
    for name in ("STORAGE_PROVIDER", "MUSIC_DIR", "R2_ACCOUNT_ID", "R2_ACCESS_KEY_ID",
                 "R2_SECRET_ACCESS_KEY", "R2_BUCKET_NAME", "R2_ENDPOINT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("MUSIC_DB_PATH", str(tmp_path / "data" / "music.db"))
    monkeypatch.setenv("COVERS_DIR", str(tmp_path / "data" / "covers"))
    return tmp_path


def test_scan_local_directory(env, make_mp3):
    music = env / "music"
    (music / "Anthem").mkdir(parents=True)
    (music / "Anthem" / "track1.mp3").write_bytes(make_mp3(title="Anthem", artist="Rau"))
    (music / "loose.mp3").write_bytes(b"this is not audio at all")

    result = CliRunner().invoke(cli, [
        '--env-file', str(env / "none.env"), '--provider', 'local',
        '--music-dir', str(music), 'scan',
    ])

    assert result.exit_code == 0, result.output
    assert "Scan Summary" in result.output
    assert "loose.mp3" in result.output
    assert CatalogDatabase(str(env / "data" / "music.db")).count_songs() == 2


def test_missing_r2_settings_exit_nonzero(env):
    result = CliRunner().invoke(cli, ['--env-file', str(env / "none.env"), 'scan'])

    assert result.exit_code == 1
    assert "R2_ACCESS_KEY_ID" in result.output


def test_check_local_directory(env):
    music = env / "music"
    music.mkdir()
    (music / "a.mp3").write_bytes(b"abc")

    result = CliRunner().invoke(cli, [
        '--env-file', str(env / "none.env"), '--provider', 'local',
        '--music-dir', str(music), 'check',
    ])

    assert result.exit_code == 0, result.output
    assert "Listed 1 objects" in result.output
