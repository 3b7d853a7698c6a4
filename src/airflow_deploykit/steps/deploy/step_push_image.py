"""Deploy push-image step handler.

Tags the local image for each configured registry and pushes it.
"""

from __future__ import annotations

from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)


@register_step("deploy-push-image")
def handle_push_image(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Push the custom image to every configured registry.

    Retries push all registries again; docker skips layers already present.
    """
    result = StepResult()
    config = deps.config

    if not config.registries:
        result.add_info("No registries configured, nothing to push", system="image")
        return result

    pushed: list[str] = []
    for registry in config.registries:
        ref = registry.image_ref(config.image)
        deps.docker.tag(config.image.local_ref, ref)
        deps.docker.push(ref)
        pushed.append(ref)
        result.add_info(f"Pushed {ref}", system="image")

    image_vars = dict(step_input.vars.get("image", {}))
    image_vars["pushed"] = pushed
    result.context_updates["image"] = image_vars
    result.output = {"pushed": pushed}
    return result
