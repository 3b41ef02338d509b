from __future__ import annotations

from agentforce_adk.tools.content import code_blocks, filter_content


def test_json_is_pulled_out_of_a_code_block() -> None:
    text = 'Here you go:\n```json\n{"a": 1}\n```\nAnything else?'

    result = filter_content.invoke({"content": text, "format": "json"})

    assert result["success"] is True
    assert result["content"] == '{"a": 1}'
    assert result["was_extracted"] is True


def test_several_json_blocks_become_a_list() -> None:
    text = '```json\n{"a": 1}\n```\nand\n```json\n{"b": 2}\n```'
    result = filter_content.invoke({"content": text, "format": "json"})
    assert result["content"] == '[\n  {\n    "a": 1\n  },\n  {\n    "b": 2\n  }\n]'


def test_yaml_from_plain_json() -> None:
    result = filter_content.invoke({"content": '{"name": "x", "tags": ["a"]}', "format": "yml"})
    assert result["format"] == "yaml"
    assert result["content"] == "name: x\ntags:\n- a"


def test_markdown_alias_and_nested_fences() -> None:
    text = "```md\n# Title\n```python\nprint(1)\n```\n```"
    assert code_blocks(text) == [("markdown", "# Title\n```python\nprint(1)\n```")]

    result = filter_content.invoke({"content": text, "format": "md"})
    assert result["content"] == "# Title\n```python\nprint(1)\n```"


def test_html_links_as_text() -> None:
    html = '<p>Intro</p><a href="/x">First</a><a href="/y">Second</a>'

    result = filter_content.invoke(
        {"content": html, "format": "html", "html_elements": "links", "html_text_only": True}
    )

    assert result["content"] == "First\n\nSecond"


def test_html_remove_elements_before_selecting() -> None:
    html = "<body><div>Keep<script>drop()</script></div><p>More</p></body>"
    result = filter_content.invoke(
        {"content": html, "format": "html", "html_selector": "div", "html_remove_elements": "script"}
    )
    assert result["content"] == "<div>Keep</div>"


def test_parsing_disabled_returns_whole_text() -> None:
    text = '  ```json\n{"a": 1}\n```  '
    result = filter_content.invoke({"content": text, "format": "json", "enable_code_block_parsing": False})
    assert result["content"] == text.strip()
    assert result["was_extracted"] is False


def test_unsupported_format_and_empty_content() -> None:
    result = filter_content.invoke({"content": "x", "format": "csv"})
    assert result == {
        "success": False,
        "error": "Unsupported format: csv. Supported formats: json, yaml, markdown, md, html",
        "format": "csv",
    }
    assert filter_content.invoke({"content": "", "format": "json"})["success"] is False
