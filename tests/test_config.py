"""Tests de carga de configuración desde el entorno."""

import pytest

from common.config import NATO_ALPHABET, ConfigurationError, Settings, get_settings


REQUIRED = {
    "PRIMARY_KEY": "p",
    "SECONDARY_KEY": "s",
    "SALT": "salt",
    "PEPPER": "pepper",
    "BASE_URL": "http://upstream.test/",
}


@pytest.fixture
def env(monkeypatch, tmp_path):
    monkeypatch.setenv("GATEWAY_ENV_FILE", str(tmp_path / "missing.env"))
    # setenv + delenv: el teardown restaura también lo que cargue load_dotenv
    for name in ("ALIAS_POOL", "ENVIRONMENT", "ADMIN_API_KEY", "CORS_ORIGINS", "GROUP_BUCKET"):
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    for name, value in REQUIRED.items():
        monkeypatch.setenv(name, value)
    return monkeypatch


class TestGetSettings:

    def test_defaults(self, env):
        settings = get_settings()

        assert settings.base_url == "http://upstream.test"
        assert settings.encryption_key == "ps"
        assert settings.alias_pool == NATO_ALPHABET
        assert settings.group_prefix == "rgaio_"
        assert settings.is_production is False
        assert settings.cors_origins == ("*",)

    @pytest.mark.parametrize("missing", sorted(REQUIRED))
    def test_missing_required(self, env, missing):
        env.delenv(missing)

        with pytest.raises(ConfigurationError, match=missing):
            get_settings()

    def test_custom_alias_pool(self, env):
        env.setenv("ALIAS_POOL", "Red, Green ,Blue")

        assert get_settings().alias_pool == ("Red", "Green", "Blue")

    def test_duplicate_alias_pool(self, env):
        env.setenv("ALIAS_POOL", "Red,Red")

        with pytest.raises(ConfigurationError):
            get_settings()

    def test_env_file(self, env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("ENVIRONMENT=production\nADMIN_API_KEY=from-file\n")
        env.setenv("GATEWAY_ENV_FILE", str(env_file))

        settings = get_settings()

        assert settings.is_production is True
        assert settings.admin_api_key == "from-file"


class TestSettings:

    def test_empty_alias_pool(self):
        with pytest.raises(ConfigurationError):
            Settings("p", "s", "salt", "pepper", "http://x", alias_pool=())
