import os

from fleet_balancer import env_bootstrap


def test_noop_without_secret_name(monkeypatch):
    monkeypatch.delenv("FLEET_SECRET_NAME", raising=False)

    def explode(*args, **kwargs):
        raise AssertionError("secrets manager must not be called")

    monkeypatch.setattr(env_bootstrap, "get_secret_from_arn", explode)

    assert env_bootstrap.load_secrets_from_aws() == 0


def test_existing_environment_wins(monkeypatch):
    calls = []

    def fake_secret(name, region_name=None):
        calls.append((name, region_name))
        return {"REDIS_URL": "redis://secret:6379", "AUTH_API_KEY": "from-secret", "UNUSED": None}

    monkeypatch.setenv("FLEET_SECRET_NAME", "fleet/balancer")
    monkeypatch.delenv("AWS_REGION", raising=False)
    monkeypatch.setenv("REDIS_URL", "redis://local:6379")
    monkeypatch.delenv("AUTH_API_KEY", raising=False)
    monkeypatch.setattr(env_bootstrap, "get_secret_from_arn", fake_secret)

    assert env_bootstrap.load_secrets_from_aws() == 2

    assert calls == [("fleet/balancer", "us-east-2")]
    assert os.environ["REDIS_URL"] == "redis://local:6379"
    assert os.environ["AUTH_API_KEY"] == "from-secret"
