"""Publish-image save step handler."""

from __future__ import annotations

from pathlib import Path

from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)


@register_step("publish-image-save")
def handle_save(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Export the built image with docker save.

    Required params:
        save_path: Tarball path; relative paths resolve against the workdir.
    """
    result = StepResult()
    save_path = step_input.params.get("save_path")
    if not save_path:
        result.add_error("Missing required parameter: save_path", system="image")
        return result

    output = Path(save_path)
    if not output.is_absolute():
        output = Path(deps.workdir) / output

    ref = deps.config.image.local_ref
    deps.docker.save(ref, output)

    image_vars = dict(step_input.vars.get("image", {}))
    image_vars["saved"] = str(output)
    result.context_updates["image"] = image_vars
    result.output = {"saved": str(output)}
    result.add_info(f"Saved {ref} to {output}", system="image")
    return result
