from __future__ import annotations

from pathlib import Path

import pytest

from agentforce_adk.tools.search import (
    fs_find_dirs_and_files,
    fs_find_files,
    fs_get_file_tree,
    gitignore_excludes,
    md_create_ascii_tree,
    should_exclude,
)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.py").write_text("print('a')\n", encoding="utf-8")
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "x.js").write_text("x\n", encoding="utf-8")
    (tmp_path / "README.md").write_text("# readme\n", encoding="utf-8")
    return tmp_path


def test_gitignore_patterns_become_segment_globs(tmp_path: Path) -> None:
    (tmp_path / ".gitignore").write_text(
        "# comment\n/out/\n**/*.log\nlogs/archive\n!keep.log\n", encoding="utf-8"
    )
    excludes = gitignore_excludes(tmp_path)
    assert "node_modules" in excludes
    assert {"out", "*.log", "logs"} <= set(excludes)
    assert "!keep.log" not in excludes
    assert should_exclude("src/debug.log", excludes)
    assert not should_exclude("src/main.py", excludes)


def test_ascii_tree_marks_ignored_directories(project: Path) -> None:
    result = md_create_ascii_tree.invoke({"path": "."})

    assert result["success"] is True
    assert result["tree"] == (
        "```\n"
        "./\n"
        "├── node_modules/ (ignored)\n"
        "├── src/\n"
        "│   └── a.py\n"
        "└── README.md\n"
        "```"
    )
    assert result["statistics"] == {"directories": 2, "files": 2, "ignored_directories": 1}


def test_ascii_tree_without_files_or_markdown(project: Path) -> None:
    result = md_create_ascii_tree.invoke({"include_files": False, "markdown_format": False})
    assert result["tree"] == "./\n├── node_modules/ (ignored)\n└── src/\n"


def test_find_files_by_extension_skips_excluded_dirs(project: Path) -> None:
    (project / "node_modules" / "dep.py").write_text("", encoding="utf-8")
    (project / "src" / "b.PY").write_text("", encoding="utf-8")

    result = fs_find_files.invoke({"extensions": ["py", ".md"]})

    assert result["success"] is True
    assert [f["path"] for f in result["files"]] == ["README.md", "src/a.py"]
    assert result["files"][1]["size"] == len("print('a')\n")


def test_find_files_honours_additional_excludes(project: Path) -> None:
    result = fs_find_files.invoke({"extensions": [".py"], "additional_excludes": ["src"]})
    assert result["count"] == 0


def test_find_files_outside_root_is_denied() -> None:
    result = fs_find_files.invoke({"extensions": [".py"], "path": ".."})
    assert result["success"] is False
    assert "Access denied" in result["error"]


def test_find_dirs_and_files_by_name(tmp_path: Path) -> None:
    (tmp_path / "src" / "utils").mkdir(parents=True)
    (tmp_path / "src" / "util_helpers.py").write_text("", encoding="utf-8")
    (tmp_path / "node_modules" / "util").mkdir(parents=True)

    result = fs_find_dirs_and_files.invoke({"pattern": "UTIL"})

    assert result["dirs"] == {"count": 1, "items": ["src/utils"]}
    assert result["files"] == {"count": 1, "items": ["src/util_helpers.py"]}
    assert result["total_found"] == 2
    assert result["truncated"] is False


def test_find_dirs_and_files_truncates_at_max_results(tmp_path: Path) -> None:
    for i in range(5):
        (tmp_path / f"match_{i}.txt").write_text("", encoding="utf-8")

    result = fs_find_dirs_and_files.invoke({"pattern": "match_", "max_results": 3})

    assert result["total_found"] == 3
    assert result["truncated"] is True


def test_file_tree_formats(project: Path) -> None:
    root = project.resolve()

    array = fs_get_file_tree.invoke({"path": ".", "excludes": ["node_modules"]})
    assert array["result"] == [str(root), str(root / "src"), str(root / "src" / "a.py"), str(root / "README.md")]

    nested = fs_get_file_tree.invoke({"path": "src", "output_format": "json"})
    assert nested["result"]["type"] == "directory"
    assert [c["name"] for c in nested["result"]["children"]] == ["a.py"]

    outline = fs_get_file_tree.invoke({"path": ".", "output_format": "yaml", "excludes": ["node_modules"]})
    assert outline["result"].splitlines()[1:] == ["  src/", "    a.py", "  README.md"]


def test_file_tree_rejects_unknown_format() -> None:
    result = fs_get_file_tree.invoke({"path": ".", "output_format": "xml"})
    assert result["success"] is False
    assert result["error"] == "Invalid output_format. Use 'array', 'json', or 'yaml'."
