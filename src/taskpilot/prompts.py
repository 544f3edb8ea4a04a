"""Prompt file loading and templating.

Prompt files are Markdown with Jinja2 placeholders, for example:

    Port the project {{ projectname }} located at {{ projectdir }}.
    Reference material lives in {{ referencesdir }}.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Union

from jinja2 import Template, TemplateError

logger = logging.getLogger(__name__)


def build_prompt_context(project_dir: Path, references_dir: Path) -> dict[str, Any]:
    """Build the variables available to every prompt template.

    Args:
        project_dir: The project the agent works on.
        references_dir: Directory with reference material for the agent.

    Returns:
        Dict with ``projectname``, ``projectdir`` and ``referencesdir``.
    """
    return {
        "projectname": project_dir.name,
        "projectdir": str(project_dir),
        "referencesdir": str(references_dir),
    }


def render_text(text: str, context: Mapping[str, Any], source: str = "<string>") -> str:
    """Render a template string. Undefined variables render as empty text."""
    try:
        return Template(text).render(**context)
    except TemplateError as e:
        logger.warning(f"Jinja2 template error in prompt '{source}': {e}")
        # Fallback to raw template if rendering fails
        return text


def render_prompt(path: Union[str, Path], context: Mapping[str, Any]) -> str:
    """Read a prompt file and render it with the given context.

    Args:
        path: Prompt file path.
        context: Template variables.

    Returns:
        Rendered prompt text.
    """
    path = Path(path)
    logger.debug(f"Reading prompt from: {path}")

    prompt = render_text(path.read_text(encoding="utf-8"), context, source=str(path))

    logger.debug(f"Using a prompt: {prompt[:500]}")
    return prompt
