"""
Markdown rendering of context fragments.
"""

from __future__ import annotations

from pathlib import PurePath

from .models import Chunk, Memory, Project, Session

_FENCE_LANGUAGES = {
    ".py": "python",
    ".go": "go",
    ".js": "javascript",
    ".ts": "typescript",
    ".rs": "rust",
    ".java": "java",
    ".rb": "ruby",
    ".sh": "bash",
    ".sql": "sql",
}

INSTRUCTIONS = (
    "Follow the conventions and constraints above. "
    "Prefer the recorded decisions over alternatives unless asked to revisit them. "
    "Cite file paths when referring to code from the context."
)


def _fence_language(path: str) -> str:
    return _FENCE_LANGUAGES.get(PurePath(path).suffix.lower(), "")


class Formatter:
    """Renders records into the text fragments placed in context output."""

    def system_prompt(
        self,
        project: Project | None,
        conventions: list[Memory],
        constraints: list[Memory],
    ) -> str:
        name = project.name if project and project.name else "unknown"
        lines = [f"You are working on the project: {name}."]
        if project is not None:
            stack = project.tech_stack
            for label, value in (
                ("Language", stack.language),
                ("Framework", stack.framework),
                ("Database", stack.database),
            ):
                if value:
                    lines.append(f"{label}: {value}")

        if conventions:
            lines.append("")
            lines.append("## Conventions")
            lines.extend(self.memory(m) for m in conventions)
        if constraints:
            lines.append("")
            lines.append("## Constraints")
            lines.extend(self.memory(m) for m in constraints)

        lines.append("")
        lines.append(INSTRUCTIONS)
        return "\n".join(lines)

    def section(self, title: str) -> str:
        return f"## {title}"

    def memory(self, memory: Memory) -> str:
        return f"- {memory.content}"

    def session(self, session: Session) -> str:
        lines = [f"- Q: {session.question}"]
        if session.model_used:
            lines.append(f"  Model: {session.model_used}")
        if session.response_summary:
            lines.append(f"  Summary: {session.response_summary}")
        return "\n".join(lines)

    def chunk(self, chunk: Chunk, path: str) -> str:
        header = f"### {path} (lines {chunk.start_line}-{chunk.end_line})"
        return f"{header}\n```{_fence_language(path)}\n{chunk.content}\n```"

    def file(self, path: str, content: str) -> str:
        return f"### {path}\n```{_fence_language(path)}\n{content}\n```"
