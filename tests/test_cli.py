"""
Tests for the command-line interface.
"""

from __future__ import annotations

from unittest.mock import patch


class TestCli:
    def test_ingest_stats_and_query(self, services, two_heading_text, tmp_path, capsys):
        from docrag.services.cli import main

        path = tmp_path / "report.txt"
        path.write_text(two_heading_text)

        with patch("docrag.services.cli._services", return_value=services):
            assert main(["ingest", str(path), "--owner", "alice"]) == 0
            out = capsys.readouterr().out
            assert "Ingestion Summary" in out
            assert "plain_text" in out

            assert main(["stats", "--owner", "alice"]) == 0
            out = capsys.readouterr().out
            assert "report.txt" in out
            assert "TOTAL: 1 documents" in out

            assert main(["query", "warehouse automation", "--owner", "alice", "--top-k", "3"]) == 0
            out = capsys.readouterr().out
            assert "Source: report.txt" in out

    def test_missing_file(self, tmp_path):
        from docrag.services.cli import main

        assert main(["ingest", str(tmp_path / "nope.txt"), "--owner", "alice"]) == 1

    def test_ingest_failure_returns_error_code(self, services, tmp_path):
        from docrag.services.cli import main

        path = tmp_path / "tiny.txt"
        path.write_text("too short")
        with patch("docrag.services.cli._services", return_value=services):
            assert main(["ingest", str(path), "--owner", "alice"]) == 1

    def test_entry_points_import_from_namespace_packages(self):
        import importlib

        import docrag

        assert getattr(docrag, "__file__", None) is None
        assert callable(importlib.import_module("docrag.services.cli").main)
        assert importlib.import_module("docrag.main").app.title == "Document Q&A Assistant"
        assert importlib.import_module("docrag.api.routes").router.routes
