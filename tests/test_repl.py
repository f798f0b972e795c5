"""Tests for the PSQ REPL and command line."""

import json
from pathlib import Path

from pipestore.query_executor import QueryResult
from pipestore.repl import _split_statements, format_value, main, print_result, run_file


class TestHelperFunctions:
    """Tests for REPL helper functions."""

    def test_split_statements(self):
        assert _split_statements("from a; from b;") == ["from a", "from b"]

    def test_split_ignores_semicolons_in_strings_and_literals(self):
        content = 'insert into a {s: "x;y"}; insert into a [{t: \'1;2\'}]; from a'
        assert _split_statements(content) == [
            'insert into a {s: "x;y"}',
            "insert into a [{t: '1;2'}]",
            "from a",
        ]

    def test_format_value(self):
        assert format_value(None) == "NULL"
        assert format_value(True) == "true"
        assert format_value(1.5) == "1.5"
        assert format_value("abc") == "'abc'"
        assert format_value([1, 2]) == "[1, 2]"
        assert format_value({"a": 1}) == '{"a": 1}'
        long = format_value(list(range(20)))
        assert len(long) == 40
        assert long.endswith("...")

    def test_print_result_table(self, capsys):
        print_result(QueryResult(columns=["name", "score"], rows=[{"name": "A", "score": 80}]))
        out = capsys.readouterr().out
        assert "name | score" in out
        assert "'A'  | 80" in out
        assert "(1 row)" in out

    def test_print_result_empty(self, capsys):
        print_result(QueryResult(columns=[], rows=[]))
        assert capsys.readouterr().out.strip() == "(no results)"


class TestRunFile:
    """Tests for file execution."""

    def test_run_file_creates_data_directory(self, tmp_path: Path, capsys):
        """A script can select a new directory, insert and query."""
        script = tmp_path / "script.psq"
        db_path = tmp_path / "data"
        script.write_text(f"""
-- Select a data directory
use "{db_path}";

insert into users {{
    name: "Ann",
    tags: ["a", "b"]
}};

from users select name;
""")

        assert run_file(script, None) == 0
        assert db_path.is_dir()
        assert "'Ann'" in capsys.readouterr().out
        stored = json.loads((db_path / "users.json").read_text())
        assert [r["name"] for r in stored.values()] == ["Ann"]

    def test_run_file_with_initial_directory(self, tmp_path: Path, users_path: Path):
        script = tmp_path / "script.psq"
        script.write_text("update users set score = 1 where name = 'A'; from users;")
        assert run_file(script, tmp_path, verbose=True) == 0
        stored = json.loads(users_path.read_text())
        assert stored["58745c13ad585"]["score"] == 1

    def test_run_file_needs_directory(self, tmp_path: Path, capsys):
        script = tmp_path / "script.psq"
        script.write_text("from users;")
        assert run_file(script, None) == 1
        assert "No data directory selected" in capsys.readouterr().err

    def test_run_file_stops_on_syntax_error(self, tmp_path: Path, capsys):
        script = tmp_path / "script.psq"
        script.write_text("from users where; from users;")
        assert run_file(script, tmp_path) == 1
        assert "Syntax error" in capsys.readouterr().err

    def test_run_file_empty(self, tmp_path: Path):
        script = tmp_path / "script.psq"
        script.write_text("-- nothing here\n")
        assert run_file(script, tmp_path) == 1


class TestMain:
    """Tests for the command line entry point."""

    def test_command(self, tmp_path: Path, users_path: Path, capsys):
        assert main([str(tmp_path), "-c", "from users select count()"]) == 0
        assert "3" in capsys.readouterr().out

    def test_command_needs_directory(self, capsys):
        assert main(["-c", "from users"]) == 1
        assert "Data directory required" in capsys.readouterr().err

    def test_command_error(self, tmp_path: Path, capsys):
        assert main([str(tmp_path), "-c", "from users where x ~ 1"]) == 1
        assert "error" in capsys.readouterr().err.lower()

    def test_file(self, tmp_path: Path, users_path: Path):
        script = tmp_path / "script.psq"
        script.write_text("delete from users where score < 80;")
        assert main([str(tmp_path), "-f", str(script)]) == 0
        assert len(json.loads(users_path.read_text())) == 2

    def test_missing_file(self, tmp_path: Path, capsys):
        assert main(["-f", str(tmp_path / "nope.psq")]) == 1
        assert "File not found" in capsys.readouterr().err
