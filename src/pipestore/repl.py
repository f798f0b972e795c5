"""Interactive REPL for the PSQ (Pipestore Query) language."""

from __future__ import annotations

import argparse
import json
import logging
import readline  # noqa: F401 - enables line editing in input()
import sys
from pathlib import Path
from typing import Any

from pipestore.database import Database
from pipestore.parsing.query_parser import QueryParser, UseQuery
from pipestore.query_executor import QueryExecutor, QueryResult

HISTORY_FILE = ".psq_history"


def _split_statements(content: str) -> list[str]:
    """Split content into statements on semicolons.

    Object and array literals may span lines, and string literals may
    contain semicolons, so only semicolons outside strings and at
    bracket depth 0 end a statement.
    """
    statements = []
    current = []
    depth = 0
    quote: str | None = None
    escape_next = False

    for ch in content:
        if escape_next:
            current.append(ch)
            escape_next = False
            continue

        if quote is not None:
            if ch == "\\":
                escape_next = True
            elif ch == quote:
                quote = None
            current.append(ch)
            continue

        if ch in "\"'`":
            quote = ch
            current.append(ch)
        elif ch in "{[":
            depth += 1
            current.append(ch)
        elif ch in "}]":
            depth = max(0, depth - 1)
            current.append(ch)
        elif ch == ";" and depth == 0:
            stmt = "".join(current).strip()
            if stmt:
                statements.append(stmt)
            current = []
        else:
            current.append(ch)

    # Handle any remaining content
    stmt = "".join(current).strip()
    if stmt:
        statements.append(stmt)

    return statements


MAX_CELL_WIDTH = 40


def format_value(value: Any) -> str:
    """Render one JSON value as a table cell, truncated to MAX_CELL_WIDTH."""
    if value is None:
        text = "NULL"
    elif isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, str):
        text = repr(value)
    elif isinstance(value, float):
        text = f"{value:.6g}"
    elif isinstance(value, (list, dict)):
        text = json.dumps(value, ensure_ascii=False)
    else:
        text = str(value)

    if len(text) > MAX_CELL_WIDTH:
        return text[: MAX_CELL_WIDTH - 3] + "..."
    return text


def print_result(result: QueryResult) -> None:
    """Print a statement's message and its rows as a table."""
    if result.message:
        print(result.message)
    if not result.rows:
        if not result.message:
            print("(no results)")
        return

    cells = [[format_value(row.get(col)) for col in result.columns] for row in result.rows]
    widths = [
        max([len(col)] + [len(line[i]) for line in cells])
        for i, col in enumerate(result.columns)
    ]

    print(" | ".join(col.ljust(width) for col, width in zip(result.columns, widths)))
    print("-+-".join("-" * width for width in widths))
    for line in cells:
        print(" | ".join(cell.ljust(width) for cell, width in zip(line, widths)))

    count = len(result.rows)
    print(f"\n({count} row{'' if count == 1 else 's'})")


def _open_database(path: Path) -> tuple[QueryExecutor, bool]:
    """Open (or create) a data directory. Returns (executor, is_new)."""
    is_new = not path.exists()
    return QueryExecutor(Database(path)), is_new


def run_repl(data_dir: Path | None) -> int:
    """Run the interactive REPL."""
    print("PSQ REPL - Pipestore Query Language")
    if data_dir:
        print(f"Data directory: {data_dir}")
    else:
        print("No data directory loaded. Use 'use <path>' to select one.")
    print("Type 'help' for commands, 'exit' to quit.\n")

    executor: QueryExecutor | None = None
    if data_dir:
        try:
            executor, is_new = _open_database(data_dir)
            if is_new:
                print(f"Created new data directory: {data_dir}")
        except OSError as e:
            print(f"Error loading data: {e}", file=sys.stderr)
            return 1

    parser = QueryParser()

    # Command history
    history_file = Path.home() / HISTORY_FILE
    try:
        readline.read_history_file(history_file)
    except (FileNotFoundError, OSError):
        pass

    try:
        while True:
            try:
                line = input("psq> ").strip()
            except EOFError:
                print()
                break

            if not line:
                continue

            # Handle special commands
            lower = line.lower().rstrip(";")
            if lower in ("exit", "quit"):
                break
            elif lower == "help":
                print_help()
                continue
            elif lower == "clear":
                print("\033[2J\033[H", end="")
                continue

            try:
                # Handle multi-line queries (continue until semicolon)
                while not line.rstrip().endswith(";"):
                    try:
                        continuation = input("...> ")
                    except EOFError:
                        break
                    if not continuation.strip():
                        # Empty line ends the statement
                        break
                    line += "\n" + continuation

                for statement in _split_statements(line):
                    query = parser.parse(statement)

                    if isinstance(query, UseQuery):
                        new_path = Path(query.path)
                        try:
                            executor, is_new = _open_database(new_path)
                            data_dir = new_path
                            if is_new:
                                print(f"Created new data directory: {new_path}")
                            else:
                                print(f"Switched to data directory: {new_path}")
                        except OSError as e:
                            print(f"Error opening data directory: {e}")
                        continue

                    if executor is None:
                        print("No data directory selected. Use 'use <path>' to select one first.")
                        break

                    print_result(executor.execute(query))

            except SyntaxError as e:
                print(f"Syntax error: {e}")
            except Exception as e:
                print(f"Error: {e}")

            print()

    finally:
        try:
            readline.set_history_length(1000)
            readline.write_history_file(history_file)
        except OSError:
            pass

    return 0


def print_help() -> None:
    """Print help information."""
    print("""
PSQ - Pipestore Query Language

DATA DIRECTORY:
  use "<path>"                 Switch to (or create) a data directory
  show collections             List collections with their record counts
  truncate <coll>              Remove every record of a collection
  drop <coll>                  Delete a collection file

QUERIES:
  from <coll>                                  All records
  from <coll> select name, address.city as city
  from <coll> select count(), avg(score)       Aggregates: count sum avg min max
  from <coll> where score >= 80 and not (name = "Bob")
  from <coll> sort by score desc, name offset 10 limit 5

CONDITIONS:
  =  !=  <  <=  >  >=
  <path> in [1, 2, 3]          <path> not in ["a", "b"]
  <path> matches /^a.*z$/i     <path> between 10 and 20
  not, and, or, parentheses

CHANGES:
  insert into <coll> {name: "Ann", tags: ["x"], address: {city: "Oslo"}}
  insert into <coll> [{name: "A"}, {name: "B"}]
  update <coll> set score = 90, address.city = "Rome" where name = "Ann"
  delete from <coll> where score < 50

Statements end with ';'. Lines starting with '--' are comments.
Use backticks for field names that are keywords: `set`, `in`.

COMMANDS:
  help                         Show this help
  clear                        Clear the screen
  exit, quit                   Leave the REPL
""")


def run_file(file_path: Path, data_dir: Path | None, verbose: bool = False) -> int:
    """Execute queries from a file.

    Args:
        file_path: Path to the file containing queries
        data_dir: Optional initial data directory
        verbose: If True, print each query before executing

    Returns:
        0 on success, 1 on error
    """
    try:
        content = file_path.read_text(encoding="utf-8")
    except OSError as e:
        print(f"Error reading file: {e}", file=sys.stderr)
        return 1

    # Strip comments (lines starting with --)
    lines = []
    for line in content.split("\n"):
        if line.strip().startswith("--"):
            continue
        lines.append(line)
    queries = _split_statements("\n".join(lines))

    if not queries:
        print("No queries found in file", file=sys.stderr)
        return 1

    executor: QueryExecutor | None = None
    parser = QueryParser()

    if data_dir:
        try:
            executor, is_new = _open_database(data_dir)
            if verbose and is_new:
                print(f"Created new data directory: {data_dir}")
        except OSError as e:
            print(f"Error opening data directory: {e}", file=sys.stderr)
            return 1

    for query_text in queries:
        if verbose:
            for i, line in enumerate(query_text.split("\n")):
                prefix = ">>> " if i == 0 else "... "
                print(f"{prefix}{line}")

        try:
            query = parser.parse(query_text)

            if isinstance(query, UseQuery):
                new_path = Path(query.path)
                executor, is_new = _open_database(new_path)
                if verbose:
                    if is_new:
                        print(f"Created new data directory: {new_path}")
                    else:
                        print(f"Switched to data directory: {new_path}")
                continue

            if executor is None:
                print("Error: No data directory selected. Use 'use <path>' first.", file=sys.stderr)
                return 1

            print_result(executor.execute(query))

        except SyntaxError as e:
            print(f"Syntax error: {e}", file=sys.stderr)
            return 1
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    arg_parser = argparse.ArgumentParser(
        description="Interactive REPL for the Pipestore Query Language"
    )
    arg_parser.add_argument(
        "data_dir",
        type=Path,
        nargs="?",
        default=None,
        help="Path to the data directory containing collection files (optional)",
    )
    arg_parser.add_argument(
        "-c", "--command",
        type=str,
        help="Execute a single command and exit",
    )
    arg_parser.add_argument(
        "-f", "--file",
        type=Path,
        help="Execute queries from a file and exit",
    )
    arg_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Print each query before executing (for -f/--file)",
    )
    arg_parser.add_argument(
        "--debug",
        action="store_true",
        help="Log storage activity to stderr",
    )

    args = arg_parser.parse_args(argv)

    if args.debug:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
        )

    if args.file:
        if not args.file.exists():
            print(f"Error: File not found: {args.file}", file=sys.stderr)
            return 1
        return run_file(args.file, args.data_dir, args.verbose)

    if args.command:
        if not args.data_dir:
            print("Error: Data directory required when using -c/--command", file=sys.stderr)
            return 1
        try:
            executor, _ = _open_database(args.data_dir)
            parser = QueryParser()
            for statement in _split_statements(args.command):
                query = parser.parse(statement)
                if isinstance(query, UseQuery):
                    print(f"Use 'pipestore {query.path}' to switch data directories")
                    continue
                print_result(executor.execute(query))
            return 0
        except SyntaxError as e:
            print(f"Syntax error: {e}", file=sys.stderr)
            return 1
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    return run_repl(args.data_dir)


if __name__ == "__main__":
    sys.exit(main())
