from __future__ import annotations

from pathlib import Path
import sys

sys.path.append(str(Path(__file__).resolve().parents[1]))

from conftest import code_file, important_file, make_snapshot
from services.search import get_context_lines, is_important_file, search_in_files, search_patterns


def test_short_query_returns_empty_result(app_config):
    snapshot = make_snapshot(code_files=[code_file("index.js", "a\nab\n")])

    for query in ["", " ", "a", " a "]:
        results = search_in_files(snapshot, query, app_config.search)
        assert results.to_dict() == {"results": [], "totalMatches": 0}


def test_search_caps_matches_per_file_but_counts_all(app_config):
    content = "\n".join(f"const token{index} = loadToken();" for index in range(6))
    snapshot = make_snapshot(code_files=[code_file("lib/auth.js", content)])

    results = search_in_files(snapshot, "LOADTOKEN", app_config.search)

    assert results.total_matches == 6
    assert len(results.results) == 1
    file_result = results.results[0]
    assert len(file_result.matches) == 5
    assert file_result.total_matches == 6
    assert results.query == "loadtoken"


def test_search_reports_line_context(app_config):
    content = "line one\nline two\nneedle here\nline four\nline five\nline six"
    snapshot = make_snapshot(code_files=[code_file("util.js", content)])

    match = search_in_files(snapshot, "needle", app_config.search).results[0].matches[0]

    assert match.line_number == 3
    assert match.line == "needle here"
    assert match.match_start == 0
    assert match.match_length == 6
    assert [line.line_number for line in match.context] == [1, 2, 3, 4, 5]
    assert [line.is_match for line in match.context] == [False, False, True, False, False]


def test_search_ranks_important_files_first_then_by_count(app_config):
    snapshot = make_snapshot(
        code_files=[
            code_file("lib/many.js", "fetch\nfetch\nfetch\nfetch"),
            code_file("lib/few.js", "fetch"),
            code_file("src/index.js", "fetch"),
        ],
        important_files=[important_file("package.json", '{"scripts": {"fetch": "node ."}}')],
    )

    results = search_in_files(snapshot, "fetch", app_config.search)

    assert [r.name for r in results.results] == ["index.js", "package.json", "many.js", "few.js"]
    assert results.total_matches == 7


def test_search_limits_number_of_files(app_config):
    files = [code_file(f"lib/mod{index}.js", "shared()") for index in range(12)]
    snapshot = make_snapshot(code_files=files)

    results = search_in_files(snapshot, "shared", app_config.search)

    assert len(results.results) == 10
    assert results.total_matches == 12


def test_search_reads_full_content_past_truncation(app_config):
    content = "x" * 20_500 + "\nhidden_marker()"
    snapshot = make_snapshot(code_files=[code_file("big.js", content)])

    results = search_in_files(snapshot, "hidden_marker", app_config.search)

    assert results.total_matches == 1
    assert results.results[0].matches[0].line_number == 2


def test_get_context_lines_clamps_to_bounds():
    lines = ["a", "b", "c"]

    context = get_context_lines(lines, 0, 2)

    assert [line.content for line in context] == ["a", "b", "c"]
    assert context[0].is_match


def test_is_important_file(app_config):
    names = app_config.search.important_names
    assert is_important_file("README.md", names)
    assert is_important_file("server.js", names)
    assert not is_important_file("helpers.js", names)


def test_search_patterns_finds_constructs(app_config):
    content = "\n".join(
        [
            "import express from 'express';",
            "const router = require('./router');",
            "export default function createServer(options) {",
            "  return express();",
            "}",
            "class ServerError extends Error {}",
        ]
    )
    snapshot = make_snapshot(code_files=[code_file("server.js", content)])

    matches = search_patterns(snapshot, "server", app_config.search)

    found = {(m.type, m.line_number) for m in matches}
    assert ("function", 3) in found
    assert ("class", 6) in found
    assert ("export", 3) in found
    export = next(m for m in matches if m.type == "export")
    assert export.text == "export default function createServer"
    assert export.context == "export default function createServer(options) {"
    imports = search_patterns(snapshot, "express", app_config.search)
    assert any(m.type == "import" and m.line_number == 1 for m in imports)


def test_search_patterns_limits_results(app_config):
    content = "\n".join(f"class Widget{index} {{}}" for index in range(20))
    snapshot = make_snapshot(code_files=[code_file("widgets.js", content)])

    matches = search_patterns(snapshot, "widget", app_config.search)

    assert len(matches) == 15
    assert search_patterns(snapshot, "", app_config.search) == []


def test_search_line_numbers_ignore_unicode_line_separators(app_config):
    form_feed = code_file("tool.py", "import os\n\x0c\ndef target():\n    pass\n", language="Python")
    separator = code_file("strings.js", "const s = 'a\u2028b';\nconst needle = 1;")
    snapshot = make_snapshot(code_files=[form_feed, separator])

    target = search_in_files(snapshot, "target", app_config.search).results[0].matches[0]
    needle = search_in_files(snapshot, "needle", app_config.search).results[0].matches[0]

    assert target.line_number == 3
    assert [line.line_number for line in target.context][:3] == [1, 2, 3]
    assert needle.line_number == 2
    assert needle.line == "const needle = 1;"


def test_search_strips_carriage_returns(app_config):
    snapshot = make_snapshot(code_files=[code_file("win.js", "first\r\nneedle line\r\nlast\r\n")])

    match = search_in_files(snapshot, "needle", app_config.search).results[0].matches[0]

    assert match.line_number == 2
    assert all(not line.content.endswith("\r") for line in match.context)
