"""
Load environment variables from AWS Secrets Manager before settings are built.

Secret name: set FLEET_SECRET_NAME (e.g. "fleet-devlive/balancer-secrets"). The
secret must be a JSON object. Uses setdefault so existing env vars (e.g. from
the task definition) override secret values. Without FLEET_SECRET_NAME this is
a no-op, which is the normal case for local runs.
"""
import logging
import os

from fleet_balancer.applib.helpers import get_secret_from_arn

logger = logging.getLogger(__name__)


def load_secrets_from_aws() -> int:
    secret_name = os.environ.get("FLEET_SECRET_NAME")
    if not secret_name:
        return 0
    region = os.environ.get("AWS_REGION", "us-east-2")
    data = get_secret_from_arn(secret_name, region_name=region)
    loaded = 0
    for key, value in data.items():
        if value is not None:
            os.environ.setdefault(key, str(value))
            loaded += 1
    logger.info("Loaded %d keys from secret %s", loaded, secret_name)
    return loaded
