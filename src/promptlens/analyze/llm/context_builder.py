from __future__ import annotations

from typing import List, Optional, Sequence

from ...models import ProjectContext

CLOSING_INSTRUCTION = "Please provide your analysis as a JSON object following the specified schema."


def build_context_section(context: Optional[ProjectContext]) -> str:
    """Render the optional project context block; empty when nothing is set."""
    if context is None:
        return ""

    lines: List[str] = []
    if context.role:
        lines.append(f"Role: {context.role}")
    if context.project_type:
        lines.append(f"Project Type: {context.project_type}")
    if context.domain:
        lines.append(f"Domain: {context.domain}")
    if context.tech_stack:
        lines.append(f"Tech Stack: {', '.join(context.tech_stack)}")
    if context.guidelines:
        lines.append("Guidelines:")
        lines.extend(f"- {guideline}" for guideline in context.guidelines)

    if not lines:
        return ""
    return "\n\nProject Context:\n" + "\n".join(lines)


def build_user_prompt(
    prompts: Sequence[str],
    date: str,
    context: Optional[ProjectContext] = None,
) -> str:
    """
    Build the user message for one batch.

    Prompts are numbered from 1 and separated by blank lines so the model can
    refer to them by position.
    """
    if not prompts:
        raise ValueError("Cannot build a user prompt from an empty batch")

    plural = "" if len(prompts) == 1 else "s"
    header = f"Analyze the following {len(prompts)} prompt{plural} from {date}:"
    numbered = "\n\n".join(f"{index}. {prompt}" for index, prompt in enumerate(prompts, start=1))

    return f"{header}{build_context_section(context)}\n\n{numbered}\n\n{CLOSING_INSTRUCTION}"
