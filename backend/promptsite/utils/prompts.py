"""
Prompts for the generation and modification pipelines.

The output formats requested here are exactly what utils.response_parser
accepts; change them together.
"""

from typing import Sequence
import json

from promptsite.schemas.artifacts import ChangeAnalysis, ChangeRequest, FileArtifact


GENERATION_SYSTEM_PROMPT = """You generate complete Vite + React projects styled with Tailwind CSS.

Reply with exactly one <structure> section followed by one <file> section per file:

<structure>
{JSON object describing the folder/file layout, each file mapped to a one-line purpose}
</structure>
<file path="relative/path.ext">
full file content
</file>

Rules:
- Paths are relative to the project root and never start with / or ..
- Every file appears once
- Do not wrap the reply in markdown or add commentary outside the sections"""


ANALYSIS_SYSTEM_PROMPT = """You decide which files of an existing project must change to satisfy a user requirement.
Reply with a single JSON object and nothing else."""


REWRITE_SYSTEM_PROMPT = """You edit project files to implement a user requirement.
Reply with a JSON array of {"path": "...", "content": "..."} objects, one per file you return,
each carrying the COMPLETE new file content. Reply with the JSON array only."""


def build_analysis_prompt(request: ChangeRequest) -> str:
    """Compose the analysis request from the requirement and current structure"""
    structure = json.dumps(request.structure, indent=2)
    return f"""You are analyzing a Vite React project structure that uses Tailwind CSS for styling. Based on the user's requirement and the provided project structure, identify which files need to be modified to implement the requested changes.

RESPONSE FORMAT:
Return a JSON object with this exact structure:
{{
  "files_to_modify": ["array of existing file paths that need changes"],
  "files_to_create": ["array of new file paths that need to be created"],
  "reasoning": "brief explanation of why these files were selected",
  "dependencies": ["array of npm packages that might need to be installed"],
  "notes": "additional implementation notes or considerations"
}}

PROJECT STRUCTURE: {structure}
USER REQUIREMENT: {request.requirement}"""


def build_rewrite_prompt(requirement: str, analysis: ChangeAnalysis) -> str:
    """Instruction sent alongside the resolved files to the rewrite stage"""
    lines = [f"USER REQUIREMENT: {requirement}"]
    if analysis.files_to_modify:
        lines.append("FILES TO MODIFY: " + ", ".join(analysis.files_to_modify))
    if analysis.files_to_create:
        lines.append("FILES TO CREATE: " + ", ".join(analysis.files_to_create))
    if analysis.dependencies:
        lines.append("AVAILABLE DEPENDENCIES: " + ", ".join(analysis.dependencies))
    if analysis.notes:
        lines.append(f"NOTES: {analysis.notes}")
    lines.append(
        'Return a JSON array of {"path", "content"} objects with the full content of every '
        "modified and created file."
    )
    return "\n".join(lines)


def render_files_for_prompt(files: Sequence[FileArtifact], prompt: str) -> str:
    """Inline file contents into a single prompt for backends without a files field"""
    blocks = [f'<file path="{f.path}">\n{f.content}\n</file>' for f in files]
    return "CURRENT FILES:\n" + "\n".join(blocks) + "\n\n" + prompt if blocks else prompt
