"""Deploy create-secrets step handler.

Creates the secrets the chart values reference: the metadata connection,
the Fernet and webserver keys, and GitSync credentials. Existing secrets
are kept unless replace_secrets is set, so re-running a deploy never
rotates keys by accident.
"""

from __future__ import annotations

from airflow_deploykit.credentials import apply_secret, resolve_keys, secret_specs
from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)


@register_step("deploy-create-secrets")
def handle_create_secrets(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Create missing deployment secrets.

    Optional params:
        replace_secrets: Recreate secrets that already exist (default: false).
    """
    result = StepResult()
    config = deps.config
    replace = bool(step_input.params.get("replace_secrets", False))

    keys = resolve_keys(config)
    specs = secret_specs(config, keys, deps.env)
    if not specs:
        result.add_info("No secrets to create", system="secrets")
        return result

    written: list[str] = []
    kept: list[str] = []
    fingerprints: dict[str, dict[str, str]] = {}
    for spec in specs:
        if apply_secret(deps.kubectl, spec, replace=replace):
            written.append(spec.name)
            fingerprints[spec.name] = spec.fingerprints()
        else:
            kept.append(spec.name)

    if keys.generated and written:
        result.add_info(
            f"Generated {', '.join(keys.generated)} for new secrets",
            system="secrets",
        )
    if kept:
        result.add_info(f"Kept existing secrets: {', '.join(kept)}", system="secrets")
    if written:
        result.add_info(f"Wrote secrets: {', '.join(written)}", system="secrets")

    # Only fingerprints are persisted; vars.yaml is plain text on disk
    result.context_updates["secrets"] = {
        "written": written,
        "kept": kept,
        "fingerprints": fingerprints,
    }
    result.output = {"written": written, "kept": kept}
    return result
