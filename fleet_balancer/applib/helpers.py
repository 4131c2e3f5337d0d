import json
from datetime import datetime, timezone
from typing import Optional

from boto3 import client


def get_utc_now() -> str:
    """Return current UTC datetime in ISO format for cycle reports."""
    return datetime.now(timezone.utc).isoformat()


def get_secret_from_arn(secret_arn: str, region_name: Optional[str] = None) -> dict[str, str]:
    r = client("secretsmanager", region_name=region_name).get_secret_value(SecretId=secret_arn)
    secret_str = r.get("SecretString")
    if not secret_str:
        raise RuntimeError(f"Secret {secret_arn!r} has no SecretString")
    return json.loads(secret_str)
