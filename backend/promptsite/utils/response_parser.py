"""
Model Output Parser
Turns raw model text into typed artifacts. Every function here is pure and
fails closed: malformed input raises OutputParseError and nothing partial is
ever returned.

Generation output uses Bolt.new style tags:

    <structure>
    {"src": {"App.jsx": "root component"}}
    </structure>
    <file path="index.html">...</file>
    <file path="src/App.jsx">...</file>

Analysis output is a JSON object, rewrite output a JSON array of
{"path": ..., "content": ...} items. Both may arrive wrapped in a markdown
code fence.
"""

from typing import Any, Dict, List, Optional, Tuple
import json
import posixpath
import re

from pydantic import ValidationError

from promptsite.core.exceptions import OutputParseError
from promptsite.core.logging_config import logger
from promptsite.schemas.artifacts import (
    ChangeAnalysis,
    ChangeSet,
    FileArtifact,
    GeneratedArtifactSet,
    Structure,
)
from promptsite.schemas.pipeline import PipelineStage


_STRUCTURE_PATTERN = re.compile(r'<structure\b[^>]*>(.*?)</structure>', re.DOTALL)
_STRUCTURE_OPEN = re.compile(r'<structure\b[^>]*>')
_FILE_PATTERN = re.compile(r'<file\b([^>]*)>(.*?)</file>', re.DOTALL)
_FILE_OPEN = re.compile(r'<file\b[^>]*>')
_ATTR_PATTERN = re.compile(r'(\w+)\s*=\s*"([^"]*)"')
_FENCE_PATTERN = re.compile(r'^\s*```[\w+-]*[ \t]*\r?\n(.*?)(?:\r?\n)?```\s*$', re.DOTALL)

# Documents where a fenced block is content, never a wrapper
_LITERAL_FENCE_SUFFIXES = (".md", ".mdx", ".markdown")


def strip_code_fence(text: str) -> str:
    """Remove one markdown code fence wrapping the whole text, if present"""
    match = _FENCE_PATTERN.match(text)
    return match.group(1) if match else text


def normalize_path(raw: str, stage: PipelineStage) -> str:
    """
    Normalize a project-relative path.

    Rejects empty, absolute and parent-escaping paths.
    """
    path = (raw or "").strip().replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    if not path:
        raise OutputParseError("File path is empty", stage=stage)
    if path.startswith("/") or re.match(r'^[A-Za-z]:/', path):
        raise OutputParseError(f"File path must be relative: {raw}", stage=stage, path=raw)
    normalized = posixpath.normpath(path)
    if normalized == ".." or normalized.startswith("../"):
        raise OutputParseError(f"File path escapes the project: {raw}", stage=stage, path=raw)
    return normalized


def _parse_attrs(attrs_str: str) -> Dict[str, str]:
    return {m.group(1): m.group(2) for m in _ATTR_PATTERN.finditer(attrs_str)}


def _clean_file_content(path: str, content: str) -> str:
    # Content sits between tags on its own lines; drop only that framing
    if content.startswith("\r\n"):
        content = content[2:]
    elif content.startswith("\n"):
        content = content[1:]
    if path.strip().lower().endswith(_LITERAL_FENCE_SUFFIXES):
        return content
    return strip_code_fence(content)


def _load_json(text: str, stage: PipelineStage, what: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise OutputParseError(
            f"{what} is not valid JSON: {e.msg} (line {e.lineno}, column {e.colno})",
            stage=stage
        ) from e


def _build_files(
    items: List[Tuple[str, str]],
    stage: PipelineStage
) -> Tuple[FileArtifact, ...]:
    files: List[FileArtifact] = []
    seen = set()
    for raw_path, content in items:
        path = normalize_path(raw_path, stage)
        if path in seen:
            raise OutputParseError(f"Duplicate file path: {path}", stage=stage, path=path)
        seen.add(path)
        files.append(FileArtifact(path=path, content=content))
    return tuple(files)


def parse_generation_output(raw: str) -> GeneratedArtifactSet:
    """
    Extract the structural description and the ordered files from generation output.

    Args:
        raw: Raw text returned by the generation service

    Returns:
        Non-empty GeneratedArtifactSet with unique, normalized paths

    Raises:
        OutputParseError: missing/duplicated/invalid structure section, no files,
            unterminated or path-less file sections, duplicate paths
    """
    stage = PipelineStage.PARSE

    if not isinstance(raw, str) or not raw.strip():
        raise OutputParseError("Generation output is empty", stage=stage)

    structures = _STRUCTURE_PATTERN.findall(raw)
    if not structures:
        if _STRUCTURE_OPEN.search(raw):
            raise OutputParseError("Structure section is not terminated", stage=stage)
        raise OutputParseError("Generation output has no <structure> section", stage=stage)
    if len(structures) > 1:
        raise OutputParseError(
            f"Generation output has {len(structures)} <structure> sections, expected one",
            stage=stage
        )

    structure_text = strip_code_fence(structures[0].strip())
    if not structure_text:
        raise OutputParseError("Structure section is empty", stage=stage)
    structure = _load_json(structure_text, stage, "Structure section")
    if not isinstance(structure, (dict, list)):
        raise OutputParseError("Structure section must be a JSON object or array", stage=stage)

    matches = list(_FILE_PATTERN.finditer(raw))
    opened = len(_FILE_OPEN.findall(raw))
    if opened != len(matches):
        raise OutputParseError(
            f"Found {opened} <file> openings but {len(matches)} complete sections",
            stage=stage
        )
    if not matches:
        raise OutputParseError("Generation output contains no <file> sections", stage=stage)

    items = []
    for index, match in enumerate(matches):
        attrs = _parse_attrs(match.group(1))
        if "path" not in attrs:
            raise OutputParseError(
                f"File section #{index + 1} has no path attribute",
                stage=stage,
                index=index
            )
        items.append((attrs["path"], _clean_file_content(attrs["path"], match.group(2))))

    files = _build_files(items, stage)
    logger.debug(f"[ResponseParser] Parsed structure and {len(files)} files")
    return GeneratedArtifactSet(structure=structure, files=files)


def _extract_json_object(text: str) -> Optional[str]:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def parse_change_analysis(raw: str) -> ChangeAnalysis:
    """
    Parse the analysis stage's JSON decision.

    Prose around the JSON object is tolerated; anything that does not
    validate against ChangeAnalysis, or names no files at all, is rejected.
    """
    stage = PipelineStage.ANALYZE

    if not isinstance(raw, str) or not raw.strip():
        raise OutputParseError("Analysis output is empty", stage=stage)

    text = strip_code_fence(raw.strip())
    candidate = _extract_json_object(text)
    if candidate is None:
        raise OutputParseError("Analysis output contains no JSON object", stage=stage)

    data = _load_json(candidate, stage, "Analysis output")
    if not isinstance(data, dict):
        raise OutputParseError("Analysis output must be a JSON object", stage=stage)

    try:
        analysis = ChangeAnalysis.model_validate(data)
    except ValidationError as e:
        raise OutputParseError(
            f"Analysis output has invalid fields: {e.error_count()} error(s)",
            stage=stage,
            errors=[err["msg"] for err in e.errors()]
        ) from e

    analysis.files_to_modify = list(dict.fromkeys(
        normalize_path(p, stage) for p in analysis.files_to_modify
    ))
    analysis.files_to_create = [
        p for p in dict.fromkeys(normalize_path(p, stage) for p in analysis.files_to_create)
        if p not in analysis.files_to_modify
    ]

    if analysis.is_empty:
        raise OutputParseError("Analysis selected no files to modify or create", stage=stage)
    return analysis


def parse_change_set(raw: str) -> ChangeSet:
    """
    Parse the rewrite stage's JSON array into a ChangeSet.

    Every item must be an object carrying a string "path" and a string
    "content"; one bad item rejects the whole output.
    """
    stage = PipelineStage.REWRITE

    if not isinstance(raw, str) or not raw.strip():
        raise OutputParseError("Rewrite output is empty", stage=stage)

    data = _load_json(strip_code_fence(raw.strip()), stage, "Rewrite output")
    if not isinstance(data, list):
        raise OutputParseError("Rewrite output must be a JSON array", stage=stage)
    if not data:
        raise OutputParseError("Rewrite output contains no files", stage=stage)

    items = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise OutputParseError(f"Rewrite item #{index + 1} is not an object", stage=stage, index=index)
        path = item.get("path")
        content = item.get("content")
        if not isinstance(path, str) or not path.strip():
            raise OutputParseError(f"Rewrite item #{index + 1} is missing 'path'", stage=stage, index=index)
        if not isinstance(content, str):
            raise OutputParseError(
                f"Rewrite item #{index + 1} ({path}) is missing 'content'",
                stage=stage,
                index=index
            )
        items.append((path, content))

    return ChangeSet(files=_build_files(items, stage))


def extract_message_text(body: Any) -> str:
    """
    Pull the text out of a Messages-API shaped body: {"content": [{"text": ...}]}.

    Raises:
        ValueError: body does not have that shape
    """
    if not isinstance(body, dict):
        raise ValueError("response body is not an object")
    content = body.get("content")
    if not isinstance(content, list) or not content:
        raise ValueError("response body has no content blocks")
    parts = [block.get("text") for block in content if isinstance(block, dict)]
    texts = [t for t in parts if isinstance(t, str)]
    if not texts:
        raise ValueError("response content has no text block")
    return "".join(texts)
