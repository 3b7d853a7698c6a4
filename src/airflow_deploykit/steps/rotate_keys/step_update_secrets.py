"""Key rotation update-secrets step handler.

Writes the new Fernet key in front of the current one ("new,old") so
Airflow encrypts with the new key while still decrypting with the old.
"""

from __future__ import annotations

from airflow_deploykit.errors import DeployError
from airflow_deploykit.keys import (
    fingerprint,
    generate_webserver_secret_key,
    primary_fernet_key,
    rotate_fernet_key,
    split_fernet_keys,
)
from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)
from airflow_deploykit.values import FERNET_SECRET_KEY, WEBSERVER_SECRET_KEY


@register_step("rotate-keys-update-secrets")
def handle_update_secrets(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Store the rotated Fernet key list and a fresh webserver secret key.

    Optional params:
        force: Rotate even if the secret already holds several keys.
    """
    result = StepResult()
    keys = deps.config.keys
    rotate_vars = dict(step_input.vars.get("rotate", {}))

    current = deps.kubectl.get_secret_data(keys.fernet_secret_name).get(FERNET_SECRET_KEY)
    if not current:
        raise DeployError(
            f"No '{FERNET_SECRET_KEY}' in secret {keys.fernet_secret_name}",
            context={"secret": keys.fernet_secret_name},
        )

    if len(split_fernet_keys(current)) > 1 and not step_input.params.get("force", False):
        # Rotating again would drop a key that may still encrypt rows
        result.add_error(
            "Secret already holds several Fernet keys; finish the previous rotation "
            "(reencrypt, drop-old-key) or pass force=true",
            system="rotate-keys",
        )
        return result

    rotated = rotate_fernet_key(current)
    deps.kubectl.create_secret(
        keys.fernet_secret_name, {FERNET_SECRET_KEY: rotated}, replace=True
    )
    new_key = primary_fernet_key(rotated)
    rotate_vars["old_fernet_fingerprint"] = fingerprint(primary_fernet_key(current))
    rotate_vars["new_fernet_fingerprint"] = fingerprint(new_key)
    result.add_info(
        f"Fernet key rotated: {rotate_vars['old_fernet_fingerprint']} -> "
        f"{rotate_vars['new_fernet_fingerprint']}",
        system="rotate-keys",
    )

    if rotate_vars.get("rotate_webserver_key", True):
        webserver_key = generate_webserver_secret_key()
        deps.kubectl.create_secret(
            keys.webserver_secret_name, {WEBSERVER_SECRET_KEY: webserver_key}, replace=True
        )
        rotate_vars["webserver_fingerprint"] = fingerprint(webserver_key)
        result.add_info("Webserver secret key replaced; UI sessions will be logged out", system="rotate-keys")

    result.context_updates["rotate"] = rotate_vars
    return result
