"""Tests for unified diff parsing and diff-based filtering."""

from __future__ import annotations

from typing import Optional

from scanweave.core.models import NormalizedFinding, Severity
from scanweave.diff.filter import files_with_findings, filter_findings_by_diff, find_file_change
from scanweave.diff.models import DiffData, LineRange
from scanweave.diff.parser import parse_diff

APP_DIFF = """diff --git a/src/app.js b/src/app.js
index 1111111..2222222 100644
--- a/src/app.js
+++ b/src/app.js
@@ -10,2 +10,4 @@ function handler(req) {
 const id = req.query.id;
+const sql = "SELECT * FROM users WHERE id = " + id;
+db.query(sql);
 return res;
"""

MULTI_FILE_DIFF = """diff --git a/lib/util.py b/lib/util.py
--- a/lib/util.py
+++ b/lib/util.py
@@ -1,3 +1,3 @@
 import os
-import sys
+import subprocess
 x = 1
@@ -40 +40,0 @@
-removed_line()
diff --git a/old.txt b/old.txt
deleted file mode 100644
--- a/old.txt
+++ /dev/null
@@ -1,2 +0,0 @@
-one
-two
diff --git a/new.py b/new.py
new file mode 100644
--- /dev/null
+++ b/new.py
@@ -0,0 +1,2 @@
+print("hi")
+++counter
\\ No newline at end of file
"""


OVERSTATED_HUNK_DIFF = """--- a/src/app.js
+++ b/src/app.js
@@ -10,3 +10,4 @@ function handler(req) {
 const id = req.query.id;
-const sql = "SELECT 1";
+const sql = "SELECT * FROM users WHERE id = " + id;
--- a/src/db.js
+++ b/src/db.js
@@ -1,1 +1,2 @@
 const pool = makePool();
+pool.connect();
"""


def _finding(path: str, line: int, end: Optional[int] = None) -> NormalizedFinding:
    return NormalizedFinding(
        source_tool="semgrep",
        rule_id="rule",
        severity=Severity.MEDIUM,
        title="t",
        fingerprint=f"{path}:{line}",
        file_path=path,
        start_line=line,
        end_line=end,
    )


class TestParseDiff:
    """Tests for parse_diff."""

    def test_app_example(self) -> None:
        """Added lines, seeded range and totals for a single hunk."""
        diff = parse_diff(APP_DIFF)
        change = diff.files["src/app.js"]
        assert change.added_lines == {11, 12}
        assert change.modified_line_ranges == [LineRange(10, 13)]
        assert diff.total_additions == 2
        assert diff.total_deletions == 0

    def test_removed_lines_do_not_advance_cursor(self) -> None:
        """Replacing a line records the new line at the old position."""
        change = parse_diff(MULTI_FILE_DIFF).files["lib/util.py"]
        assert change.added_lines == {2}
        assert change.deletions == 2
        assert change.modified_line_ranges == [LineRange(1, 3)]

    def test_zero_count_hunk_seeds_no_range(self) -> None:
        """A pure deletion hunk adds a hunk but no range."""
        change = parse_diff(MULTI_FILE_DIFF).files["lib/util.py"]
        assert len(change.hunks) == 2
        assert len(change.modified_line_ranges) == 1

    def test_deleted_file_omitted(self) -> None:
        """Files whose new side is /dev/null are not recorded."""
        assert "old.txt" not in parse_diff(MULTI_FILE_DIFF).files

    def test_new_file_lines(self) -> None:
        """A content line starting with +++ inside a hunk is an addition."""
        change = parse_diff(MULTI_FILE_DIFF).files["new.py"]
        assert change.added_lines == {1, 2}
        assert change.additions == 2

    def test_totals_across_files(self) -> None:
        """Totals sum the files that have a new side."""
        diff = parse_diff(MULTI_FILE_DIFF)
        assert diff.total_additions == 3
        assert diff.total_deletions == 2

    def test_empty_input(self) -> None:
        """Empty text parses to an empty diff."""
        diff = parse_diff("")
        assert diff.files == {}
        assert diff.total_additions == 0

    def test_dict_round_trip(self) -> None:
        """DiffData survives a JSON-shaped round trip."""
        diff = parse_diff(MULTI_FILE_DIFF)
        assert DiffData.from_dict(diff.to_dict()).to_dict() == diff.to_dict()

    def test_next_file_header_closes_short_hunk(self) -> None:
        """A hunk whose counts overstate its body does not swallow the next header."""
        diff = parse_diff(OVERSTATED_HUNK_DIFF)
        assert diff.total_deletions == 1
        assert diff.files["src/app.js"].added_lines == {11}
        assert diff.files["src/db.js"].added_lines == {2}
        assert diff.files["src/db.js"].modified_line_ranges == [LineRange(1, 2)]


class TestFindFileChange:
    """Tests for find_file_change."""

    def test_suffix_match(self) -> None:
        """Absolute or prefixed finding paths match by suffix."""
        diff = parse_diff(APP_DIFF)
        assert find_file_change(diff, "/work/repo/src/app.js") is not None
        assert find_file_change(diff, "./src/app.js") is not None

    def test_basename_match(self) -> None:
        """A bare file name matches by basename."""
        assert find_file_change(parse_diff(APP_DIFF), "app.js") is not None

    def test_no_match(self) -> None:
        """Unrelated paths do not match."""
        assert find_file_change(parse_diff(APP_DIFF), "src/other.js") is None


class TestFilterFindingsByDiff:
    """Tests for filter_findings_by_diff."""

    def test_app_example(self) -> None:
        """Added line kept, far line dropped, context line kept."""
        diff = parse_diff(APP_DIFF)
        findings = [_finding("src/app.js", 11), _finding("src/app.js", 20), _finding("src/app.js", 16)]
        kept = filter_findings_by_diff(findings, diff, context=3)
        assert [f.start_line for f in kept] == [11, 16]

    def test_zero_context(self) -> None:
        """Without context only the hunk range itself counts."""
        diff = parse_diff(APP_DIFF)
        kept = filter_findings_by_diff([_finding("src/app.js", 16)], diff, context=0)
        assert kept == []

    def test_span_overlap(self) -> None:
        """A multi-line finding overlapping an added line is kept."""
        diff = parse_diff(APP_DIFF)
        kept = filter_findings_by_diff([_finding("src/app.js", 5, 12)], diff, context=0)
        assert len(kept) == 1

    def test_file_level_finding_kept(self) -> None:
        """Findings without a line are kept when their file changed."""
        diff = parse_diff(APP_DIFF)
        assert len(filter_findings_by_diff([_finding("src/app.js", 0)], diff)) == 1

    def test_unchanged_file_dropped(self) -> None:
        """Findings in files outside the diff are dropped."""
        diff = parse_diff(APP_DIFF)
        assert filter_findings_by_diff([_finding("src/db.js", 11)], diff) == []

    def test_idempotent(self) -> None:
        """Filtering an already filtered list changes nothing."""
        diff = parse_diff(APP_DIFF)
        findings = [_finding("src/app.js", n) for n in range(1, 30)]
        once = filter_findings_by_diff(findings, diff)
        assert filter_findings_by_diff(once, diff) == once

    def test_files_with_findings(self) -> None:
        """Diff paths that carry findings are listed once."""
        diff = parse_diff(MULTI_FILE_DIFF)
        findings = [_finding("lib/util.py", 2), _finding("lib/util.py", 3), _finding("other.py", 1)]
        assert files_with_findings(findings, diff) == ["lib/util.py"]
