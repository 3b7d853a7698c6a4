"""Key rotation runbook step handlers.

Rotating the Fernet key without losing access to stored connections:
- rotate-keys-init: Check the release exists and keys live in secrets
- rotate-keys-update-secrets: Store "new,old" Fernet keys and a fresh webserver key
- rotate-keys-upgrade-release: Upgrade the release and restart its pods
- rotate-keys-reencrypt: Run `airflow rotate-fernet-key` in the scheduler
- rotate-keys-drop-old-key: Keep only the new Fernet key and restart again
- rotate-keys-finalize: Summarize and write rotate-keys-report.json
"""

# Import step modules to register handlers
from airflow_deploykit.steps.rotate_keys import (
    step_drop_old_key,
    step_finalize,
    step_init,
    step_reencrypt,
    step_update_secrets,
    step_upgrade_release,
)

__all__ = [
    "step_init",
    "step_update_secrets",
    "step_upgrade_release",
    "step_reencrypt",
    "step_drop_old_key",
    "step_finalize",
]
