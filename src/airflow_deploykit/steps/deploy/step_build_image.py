"""Deploy build-image step handler.

Renders the Dockerfile and requirements.txt into the run's workdir and
builds the custom image from them.
"""

from __future__ import annotations

from pathlib import Path

from airflow_deploykit.image import write_build_context
from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)


@register_step("deploy-build-image")
def handle_build_image(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Build the custom Airflow image.

    Optional params:
        platform: Target platform passed to docker build (e.g. linux/amd64).
        no_cache: Build without the layer cache (default: false).
    """
    result = StepResult()
    image = deps.config.image

    context_dir = Path(deps.workdir) / "image"
    files = write_build_context(image, context_dir)
    result.add_info(f"Build context written to {context_dir}", system="image")

    build = deps.docker.build(
        context_dir,
        image.local_ref,
        platform=step_input.params.get("platform"),
        no_cache=bool(step_input.params.get("no_cache", False)),
    )

    image_vars = dict(step_input.vars.get("image", {}))
    image_vars["local_ref"] = image.local_ref
    image_vars["build_context"] = str(context_dir)
    result.context_updates["image"] = image_vars
    result.output = {
        "image": image.local_ref,
        "files": {name: str(path) for name, path in files.items()},
        "elapsed_ms": build.elapsed_ms,
    }

    result.add_info(f"Built image {image.local_ref}", system="image")
    return result
