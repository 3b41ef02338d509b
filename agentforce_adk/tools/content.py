"""Extract JSON, YAML, markdown or HTML out of free-form model output.

Models tend to wrap structured answers in fenced code blocks and surround
them with prose. ``filter_content`` pulls the requested format back out so
the next step (or the caller) gets just the payload.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Dict, List, Optional, Tuple

import yaml
from bs4 import BeautifulSoup
from langchain_core.tools import tool


logger = logging.getLogger(__name__)

CONTENT_FORMATS = ("json", "yaml", "markdown", "html")
FORMAT_ALIASES = {"md": "markdown", "yml": "yaml"}
HTML_ELEMENT_ALIASES = {"links": "a", "styles": "style"}

_OPEN_FENCE_RE = re.compile(r"^\s*```\s*([\w+-]*)\s*$")
_CLOSE_FENCE_RE = re.compile(r"^\s*```\s*$")
_YAML_HINT_RE = re.compile(r"^\s*[\w-]+\s*:(\s+.+)?$|^\s*-\s+.+$", re.MULTILINE)
_HTML_TAG_RE = re.compile(
    r"<(html|head|body|div|p|h[1-6]|a|img|section|article|nav|header|footer|style|script)\b[^>]*>",
    re.IGNORECASE,
)


def code_blocks(text: str) -> List[Tuple[str, str]]:
    """Return ``(language, body)`` for every fenced block in ``text``.

    Fences opened inside a block (a markdown block quoting code) are kept
    as part of the outer block.
    """
    blocks = []
    lines = text.splitlines()
    i = 0
    while i < len(lines):
        opened = _OPEN_FENCE_RE.match(lines[i])
        if not opened:
            i += 1
            continue
        language = opened.group(1).lower()
        body: List[str] = []
        depth = 0
        i += 1
        while i < len(lines):
            line = lines[i]
            if _CLOSE_FENCE_RE.match(line):
                if depth == 0:
                    break
                depth -= 1
            elif _OPEN_FENCE_RE.match(line):
                depth += 1
            body.append(line)
            i += 1
        content = "\n".join(body).strip()
        if content:
            blocks.append((FORMAT_ALIASES.get(language, language), content))
        i += 1
    return blocks


def _looks_like(fmt: str, text: str) -> bool:
    stripped = text.strip()
    if fmt == "json":
        return (stripped.startswith("{") and stripped.endswith("}")) or (
            stripped.startswith("[") and stripped.endswith("]")
        )
    if fmt == "yaml":
        return bool(_YAML_HINT_RE.search(stripped))
    if fmt == "html":
        return bool(re.search(r"<!DOCTYPE\s+html", stripped, re.IGNORECASE)) or len(
            {m.group(1).lower() for m in _HTML_TAG_RE.finditer(stripped)}
        ) >= 2
    return False


def _blocks_for(fmt: str, text: str) -> List[str]:
    blocks = code_blocks(text)
    tagged = [body for language, body in blocks if language == fmt]
    if tagged or fmt == "markdown":
        return tagged
    return [body for language, body in blocks if _looks_like(fmt, body)]


def extract_json(text: str, parse_code_blocks: bool = True) -> str:
    if not parse_code_blocks:
        return text.strip()
    blocks = _blocks_for("json", text)
    if len(blocks) == 1:
        return blocks[0]
    if blocks:
        merged = []
        for block in blocks:
            try:
                merged.append(json.loads(block))
            except ValueError:
                merged.append({"content": block})
        return json.dumps(merged, indent=2, ensure_ascii=False)
    try:
        return json.dumps(json.loads(text), ensure_ascii=False, separators=(",", ":"))
    except ValueError:
        return text.strip()


def extract_yaml(text: str, parse_code_blocks: bool = True) -> str:
    if not parse_code_blocks:
        return text.strip()
    blocks = _blocks_for("yaml", text)
    if len(blocks) == 1:
        return blocks[0]
    if blocks:
        items = []
        for block in blocks:
            lines = block.splitlines()
            items.append("\n".join([f"- {lines[0]}"] + [f"  {line}" for line in lines[1:]]))
        return "\n".join(items)
    try:
        data = json.loads(text)
    except ValueError:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError:
            return text.strip()
    if isinstance(data, (dict, list)):
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True).strip()
    return text.strip()


def extract_markdown(text: str, parse_code_blocks: bool = True) -> str:
    if not parse_code_blocks:
        return text.strip()
    blocks = _blocks_for("markdown", text)
    if blocks:
        return "\n\n---\n\n".join(blocks)
    return text.strip()


def select_html(
    html: str,
    elements: Optional[str] = None,
    selector: Optional[str] = None,
    text_only: bool = False,
    include_attributes: bool = False,
    remove_elements: Optional[List[str]] = None,
) -> str:
    """Pick elements out of an HTML document with a CSS selector.

    ``elements`` is a comma-separated list of tag names; ``links`` and
    ``styles`` stand for ``a`` and ``style``. ``selector`` wins over
    ``elements``; with neither, the body is returned.
    """
    soup = BeautifulSoup(html, "html.parser")
    if soup.body is None:
        soup = BeautifulSoup(f"<body>{html}</body>", "html.parser")

    for name in remove_elements or []:
        for node in soup.select(name):
            node.decompose()

    if not selector and elements:
        names = [e.strip().lower() for e in elements.split(",") if e.strip()]
        selector = ", ".join(HTML_ELEMENT_ALIASES.get(n, n) for n in names)
    selector = selector or "body"

    results = []
    for node in soup.select(selector):
        if text_only:
            text = node.get_text(" ", strip=True)
            if text:
                results.append(text)
        elif include_attributes:
            results.append(str(node))
        else:
            inner = node.decode_contents().strip() or node.get_text(strip=True)
            if inner:
                results.append(f"<{node.name}>{inner}</{node.name}>")
    return "\n\n".join(results)


def extract_html(text: str, parse_code_blocks: bool = True, **options) -> str:
    if not parse_code_blocks:
        return select_html(text, **options)
    blocks = [select_html(b, **options) for b in _blocks_for("html", text)]
    blocks = [b for b in blocks if b.strip()]
    if blocks:
        return "\n\n---\n\n".join(blocks)
    if _looks_like("html", text):
        return select_html(text, **options)
    return text.strip()


@tool
def filter_content(
    content: str,
    format: str,
    enable_code_block_parsing: bool = True,
    html_elements: Optional[str] = None,
    html_text_only: bool = False,
    html_include_attributes: bool = False,
    html_selector: Optional[str] = None,
    html_remove_elements: Optional[str] = None,
) -> Dict:
    """Extract JSON, YAML, markdown or HTML from text, e.g. from ```json code blocks.

    Args:
        content: Text to extract from
        format: json, yaml, markdown (or md) or html
        enable_code_block_parsing: Look inside fenced code blocks; false returns the whole text
        html_elements: For html: comma-separated tags to keep, e.g. "body,div,links"
        html_text_only: For html: return text without tags
        html_include_attributes: For html: keep element attributes
        html_selector: For html: CSS selector, overrides html_elements
        html_remove_elements: For html: comma-separated tags to drop first, e.g. "script,style"
    """
    if not content or not isinstance(content, str):
        return {"success": False, "error": "Content must be a non-empty string", "format": format}

    fmt = (format or "").strip().lower()
    fmt = FORMAT_ALIASES.get(fmt, fmt)
    if fmt not in CONTENT_FORMATS:
        return {
            "success": False,
            "error": f"Unsupported format: {format}. Supported formats: json, yaml, markdown, md, html",
            "format": format,
        }

    try:
        if fmt == "json":
            extracted = extract_json(content, enable_code_block_parsing)
        elif fmt == "yaml":
            extracted = extract_yaml(content, enable_code_block_parsing)
        elif fmt == "markdown":
            extracted = extract_markdown(content, enable_code_block_parsing)
        else:
            extracted = extract_html(
                content,
                enable_code_block_parsing,
                elements=html_elements,
                selector=html_selector,
                text_only=html_text_only,
                include_attributes=html_include_attributes,
                remove_elements=[e.strip() for e in (html_remove_elements or "").split(",") if e.strip()],
            )
    except Exception as e:
        logger.warning("filter_content failed for format %s: %s", fmt, e)
        return {"success": False, "error": f"Failed to filter content: {e}", "format": fmt}

    return {
        "success": True,
        "format": fmt,
        "original_length": len(content),
        "extracted_length": len(extracted),
        "was_extracted": enable_code_block_parsing and extracted != content.strip(),
        "code_block_parsing_enabled": enable_code_block_parsing,
        "content": extracted,
    }
