from __future__ import annotations

from functools import lru_cache
from typing import Optional

from logrelay.common.env import env_str


class SecretError(RuntimeError):
    pass


def _resolve_project_id() -> str:
    """
    Resolve the GCP project id used for Secret Manager lookups.
    """
    for k in ("GOOGLE_CLOUD_PROJECT", "GCP_PROJECT", "GCLOUD_PROJECT", "PROJECT_ID"):
        v = env_str(k)
        if v:
            return v
    raise SecretError(
        "Missing GCP project id for Secret Manager. "
        "Set one of: GOOGLE_CLOUD_PROJECT, GCP_PROJECT, GCLOUD_PROJECT, PROJECT_ID."
    )


def secret_resource_name(name: str, *, project_id: Optional[str] = None, version: str = "latest") -> str:
    n = str(name or "").strip()
    if not n:
        raise SecretError("Secret name is empty")

    # Full resource name already includes versions.
    if n.startswith("projects/") and "/secrets/" in n and "/versions/" in n:
        return n

    # Full secret name without versions.
    if n.startswith("projects/") and "/secrets/" in n:
        return f"{n}/versions/{version}"

    pid = (project_id or "").strip() or _resolve_project_id()
    return f"projects/{pid}/secrets/{n}/versions/{version}"


@lru_cache(maxsize=64)
def _access_secret_version(resource_name: str) -> str:
    """
    Access a Secret Manager secret version and return its decoded payload.

    Cached: the relay reads the bot token once per cold start.
    """
    from google.cloud import secretmanager

    client = secretmanager.SecretManagerServiceClient()
    try:
        resp = client.access_secret_version(request={"name": resource_name})
    except Exception as e:
        raise SecretError(f"Failed to access secret: {resource_name} ({type(e).__name__}: {e})") from e

    data = getattr(getattr(resp, "payload", None), "data", None)  # bytes
    return (data or b"").decode("utf-8", errors="replace").strip()


def get_secret(
    name: str,
    *,
    env_var: Optional[str] = None,
    required: bool = True,
    version: str = "latest",
    project_id: Optional[str] = None,
) -> Optional[str]:
    """
    Retrieve a secret value.

    Sources, in order:
    - `env_var` (when given and non-empty); this is how local/dev runs pass tokens
    - Google Secret Manager; `name` is either a full resource name
      (`projects/.../secrets/...[/versions/...]`) or a secret id in the resolved project
    """
    if env_var:
        v = env_str(env_var)
        if v is not None:
            return v

    resource = secret_resource_name(name, project_id=project_id, version=version)
    raw = _access_secret_version(resource)
    if raw:
        return raw
    if required:
        raise SecretError(f"Missing required secret: {resource}")
    return None


def get_slack_bot_token() -> Optional[str]:
    """
    SLACK_BOT_TOKEN policy:
    - env var SLACK_BOT_TOKEN wins
    - else Secret Manager, only when SLACK_BOT_TOKEN_SECRET names the secret
    - else None (Slack delivery disabled)
    """
    v = env_str("SLACK_BOT_TOKEN")
    if v is not None:
        return v
    secret_name = env_str("SLACK_BOT_TOKEN_SECRET")
    if secret_name is None:
        return None
    return get_secret(secret_name, required=False)
