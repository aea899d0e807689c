# tests/unit/test_diffstat.py: Unit tests for the stat summary parser.

from repolink.diffstat import parse_show_stat


def test_parse_multi_file_stat():
    raw = (
        " src/a.ts | 4 ++--\n"
        " src/b.ts | 3 +++\n"
        " 2 files changed, 5 insertions(+), 2 deletions(-)\n"
    )
    stat = parse_show_stat(raw)

    assert stat.total_insertions == 5
    assert stat.total_deletions == 2
    assert [(c.file_name, c.added, c.removed) for c in stat.changes] == [
        ("src/a.ts", 2, 2),
        ("src/b.ts", 3, 0),
    ]


def test_parse_balanced_two_file_stat():
    stat = parse_show_stat(
        " src/a.ts | 4 ++--\n src/b.ts | 2 +-\n 2 files changed, 4 insertions(+), 2 deletions(-)"
    )

    assert stat.total_insertions == 4
    assert stat.total_deletions == 2
    assert [(c.file_name, c.added, c.removed) for c in stat.changes] == [
        ("src/a.ts", 2, 2),
        ("src/b.ts", 1, 1),
    ]


def test_file_named_like_a_summary_is_still_a_file_line():
    stat = parse_show_stat(" 2 files changed.md | 2 ++\n 1 file changed, 2 insertions(+)\n")

    assert stat.total_insertions == 2
    assert stat.total_deletions == 0
    assert [(c.file_name, c.added, c.removed) for c in stat.changes] == [("2 files changed.md", 2, 0)]


def test_parse_single_file_singular_summary():
    stat = parse_show_stat(" README.md | 1 +\n 1 file changed, 1 insertion(+)\n")
    assert stat.total_insertions == 1
    assert stat.total_deletions == 0
    assert stat.changes[0].file_name == "README.md"


def test_parse_deletions_only():
    stat = parse_show_stat(" old.py | 3 ---\n 1 file changed, 3 deletions(-)\n")
    assert stat.total_insertions == 0
    assert stat.total_deletions == 3
    assert stat.changes[0].removed == 3


def test_binary_files_and_blank_lines_are_ignored():
    raw = (
        "\n"
        " logo.png | Bin 0 -> 1024 bytes\n"
        " 1 file changed, 0 insertions(+), 0 deletions(-)\n"
    )
    stat = parse_show_stat(raw)
    assert stat.changes == []
    assert stat.total_insertions == 0


def test_missing_summary_line_yields_zero_totals():
    stat = parse_show_stat(" a.txt | 2 ++\n")
    assert stat.total_insertions == 0
    assert stat.total_deletions == 0
    assert len(stat.changes) == 1


def test_empty_output():
    stat = parse_show_stat("")
    assert stat.changes == []
    assert (stat.total_insertions, stat.total_deletions) == (0, 0)
