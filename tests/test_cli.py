"""Tests for the freshscan CLI (record commands; no camera or network)."""

import asyncio
import json
import threading
from unittest.mock import patch

import pytest

from freshscan.cli import _prompt, main
from freshscan.db import RecordStore
from freshscan.models import ScanRecord


@pytest.fixture
def config_path(tmp_path):
    db_path = tmp_path / "records.db"
    path = tmp_path / "config.toml"
    path.write_text(f'[database]\npath = "{db_path.as_posix()}"\n')

    store = RecordStore(db_path)
    store.append(ScanRecord(
        id="r-late", name="Rice", expiry_date="2099-01-01",
        scan_timestamp="2025-01-01T00:00:00+00:00",
    ))
    store.append(ScanRecord(
        id="r-old", name="Bread", expiry_date="2000-01-01",
        scan_timestamp="2025-01-02T00:00:00+00:00",
    ))
    store.close()
    return str(path)


def test_no_command_prints_help(capsys):
    with pytest.raises(SystemExit) as exc:
        main([])
    assert exc.value.code == 1
    assert "freshscan" in capsys.readouterr().out


def test_list_sorted_by_expiry(config_path, capsys):
    main(["-c", config_path, "list"])
    out = capsys.readouterr().out
    assert "2 品" in out
    assert out.index("Bread") < out.index("Rice")
    assert "期限切れ" in out


def test_list_json(config_path, capsys):
    main(["-c", config_path, "list", "--json"])
    data = json.loads(capsys.readouterr().out)
    assert [item["id"] for item in data] == ["r-old", "r-late"]
    assert data[0]["status"] == "expired"
    assert data[1]["status"] == "ok"


def test_delete(config_path, capsys):
    main(["-c", config_path, "delete", "r-old"])
    assert "削除しました" in capsys.readouterr().out

    main(["-c", config_path, "delete", "r-old"])
    assert "変更なし" in capsys.readouterr().out

    main(["-c", config_path, "list", "--json"])
    data = json.loads(capsys.readouterr().out)
    assert [item["id"] for item in data] == ["r-late"]


def test_extract_missing_file(config_path, capsys):
    with pytest.raises(SystemExit):
        main(["-c", config_path, "extract", "/nonexistent/label.jpg"])
    assert "ファイルが見つかりません" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_prompt_returns_input():
    with patch("builtins.input", return_value="y"):
        assert await _prompt("? ") == "y"


@pytest.mark.asyncio
async def test_prompt_propagates_eof():
    with patch("builtins.input", side_effect=EOFError):
        with pytest.raises(EOFError):
            await _prompt("? ")


@pytest.mark.asyncio
async def test_blocked_prompt_does_not_hold_up_shutdown():
    """A cancelled prompt leaves no executor thread for shutdown to wait on."""
    asked = threading.Event()
    answer = threading.Event()

    def blocking_input(message):
        asked.set()
        answer.wait(timeout=5)
        return ""

    with patch("builtins.input", side_effect=blocking_input):
        task = asyncio.create_task(_prompt("? "))
        while not asked.is_set():
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        loop = asyncio.get_running_loop()
        await asyncio.wait_for(loop.shutdown_default_executor(), timeout=1)
        answer.set()
