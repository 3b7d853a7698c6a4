"""Custom Airflow image recipe rendering.

Renders the Dockerfile and requirements.txt for an image that extends the
upstream Airflow image with extra OS packages, Python distributions and
environment variables.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

import jinja2

from airflow_deploykit.config import ImageConfig
from airflow_deploykit.io import write_text

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"
DOCKERFILE_TEMPLATE = "Dockerfile.j2"

_NEEDS_QUOTING = re.compile(r"[\s\"'\\$]")


def _docker_quote(value: str) -> str:
    """Quote an ENV value only when Docker would otherwise split or expand it.

    Docker still substitutes $VAR inside double quotes, so $ is escaped too.
    """
    if value and not _NEEDS_QUOTING.search(value):
        return value
    return json.dumps(value, ensure_ascii=False).replace("$", "\\$")


def _environment() -> jinja2.Environment:
    env = jinja2.Environment(
        loader=jinja2.FileSystemLoader(TEMPLATES_DIR),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        undefined=jinja2.StrictUndefined,
        autoescape=False,
    )
    env.filters["docker_quote"] = _docker_quote
    return env


def requirement_lines(image: ImageConfig) -> list[str]:
    """Requirement lines in install order.

    With pin_airflow, apache-airflow is pinned to the base image's version
    first so the extra distributions cannot move Airflow itself.
    """
    lines: list[str] = []
    declared = {p.name.lower() for p in image.python_packages}

    if image.pin_airflow and "apache-airflow" not in declared:
        version = image.airflow_version
        if version:
            lines.append(f"apache-airflow=={version}")
        else:
            logger.warning(
                f"Base image {image.base_image} carries no Airflow version; "
                "apache-airflow will not be pinned"
            )

    lines.extend(p.requirement for p in image.python_packages)
    return lines


def render_requirements(image: ImageConfig) -> str:
    """Render requirements.txt content."""
    return "\n".join(requirement_lines(image)) + "\n"


def render_dockerfile(image: ImageConfig) -> str:
    """Render the Dockerfile for the custom image."""
    template = _environment().get_template(DOCKERFILE_TEMPLATE)
    return template.render(image=image)


def write_build_context(image: ImageConfig, directory: str | Path) -> dict[str, Path]:
    """Write Dockerfile and requirements.txt into a build context directory.

    Args:
        image: Image recipe.
        directory: Build context directory (created if missing).

    Returns:
        Mapping of artifact name to written path.
    """
    directory = Path(directory)
    paths = {
        "Dockerfile": write_text(directory / "Dockerfile", render_dockerfile(image)),
        "requirements.txt": write_text(
            directory / "requirements.txt", render_requirements(image)
        ),
    }
    logger.info(f"Wrote build context for {image.local_ref} to {directory}")
    return paths
