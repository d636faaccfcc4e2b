"""
build_cluster_index CLI tests (in-memory store, SQLite source).
"""

import json
import logging
import sqlite3

import pytest

import build_cluster_index


@pytest.fixture
def sqlite_path(tmp_path):
    path = tmp_path / "points.db"
    conn = sqlite3.connect(path)
    conn.execute(
        "CREATE TABLE points (id INTEGER PRIMARY KEY, longitude REAL, latitude REAL, hidden INTEGER)"
    )
    conn.executemany(
        "INSERT INTO points VALUES (?, ?, ?, 0)",
        [(1, 37.61776, 55.75577), (2, 37.62, 55.76), (3, -73.9857, 40.7484)],
    )
    conn.commit()
    conn.close()
    return str(path)


def _fatal_records(caplog):
    return [r for r in caplog.records if r.levelno == logging.CRITICAL]


class TestBuildCli:

    def test_memory_build(self, sqlite_path, capsys):
        code = build_cluster_index.main([
            "--source", "sqlite", "--sqlite-path", sqlite_path,
            "--store", "memory", "--min-zoom", "2", "--max-zoom", "5", "--workers", "2",
        ])
        assert code == 0
        summary = json.loads(capsys.readouterr().out)
        assert summary["points_staged"] == 3
        assert summary["assignment"]["events_inserted"] == 9
        assert summary["aggregation"]["points_covered"] == 3

    def test_bottom_up_strategy_flag(self, sqlite_path, capsys):
        code = build_cluster_index.main([
            "--source", "sqlite", "--sqlite-path", sqlite_path,
            "--store", "memory", "--min-zoom", "1", "--max-zoom", "4", "--strategy", "bottom_up",
        ])
        assert code == 0
        assert json.loads(capsys.readouterr().out)["aggregation"]["strategy"] == "bottom_up"

    def test_missing_sqlite_path(self, caplog):
        with caplog.at_level(logging.INFO):
            code = build_cluster_index.main(["--source", "sqlite", "--store", "memory"])
        assert code == 1
        assert len(_fatal_records(caplog)) == 1

    def test_invalid_zoom_override(self, sqlite_path, caplog):
        with caplog.at_level(logging.INFO):
            code = build_cluster_index.main([
                "--source", "sqlite", "--sqlite-path", sqlite_path,
                "--store", "memory", "--min-zoom", "9", "--max-zoom", "5",
            ])
        assert code == 1
        assert "configuration" in _fatal_records(caplog)[0].getMessage()
        assert _fatal_records(caplog)[0].custom_dimensions["error"] == "CONFIG_ERROR"

    def test_aggregate_only_needs_persistent_store(self, caplog):
        with caplog.at_level(logging.INFO):
            code = build_cluster_index.main(["--store", "memory", "--aggregate-only"])
        assert code == 1
        assert len(_fatal_records(caplog)) == 1

    def test_missing_table_is_single_fatal_line(self, tmp_path, caplog):
        empty = tmp_path / "empty.db"
        sqlite3.connect(empty).close()
        with caplog.at_level(logging.INFO):
            code = build_cluster_index.main([
                "--source", "sqlite", "--sqlite-path", str(empty), "--store", "memory",
                "--min-zoom", "1", "--max-zoom", "3",
            ])
        assert code == 1
        fatal = _fatal_records(caplog)
        assert len(fatal) == 1
        assert "staging phase" in fatal[0].getMessage()
        details = fatal[0].custom_dimensions
        assert details["error"] == "SOURCE_ERROR"
        assert details["error_type"] == "ClusterIndexBuildError"
        assert details["phase"] == "staging"
        assert details["retryable"] is False
