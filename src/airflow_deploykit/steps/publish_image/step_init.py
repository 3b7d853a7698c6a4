"""Publish-image init step handler."""

from __future__ import annotations

from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)


@register_step("publish-image-init")
def handle_init(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Validate publish parameters.

    Optional params:
        save_path: Write the image to this tarball (docker save).
    """
    result = StepResult()
    config = deps.config
    save_path = step_input.params.get("save_path")

    if not config.registries and not save_path:
        result.add_error(
            "Nothing to publish: configure registries or pass save_path",
            system="image",
        )
        return result

    result.context_updates["image"] = {
        "local_ref": config.image.local_ref,
        "deployed_ref": config.image_ref(),
        "pushed": [],
    }
    result.flow_control = {
        "push_image": bool(config.registries),
        "save_image": bool(save_path),
    }

    targets = [r.image_ref(config.image) for r in config.registries]
    if save_path:
        targets.append(str(save_path))
    result.add_info(
        f"Publishing {config.image.local_ref} to {', '.join(targets)}",
        system="image",
    )
    return result
