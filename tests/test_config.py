"""
Config tests — layered loading and DatabaseConfig validation.
"""

import pytest

from gambit.config import ConfigLoader, DatabaseConfig
from gambit.db import Database, configure_database, get_database
from gambit.faults import ConfigInvalidFault


class TestLoading:

    def test_defaults(self):
        config = ConfigLoader.load(environ={}).database_config()
        assert config == DatabaseConfig()
        assert config.url == "sqlite:///:memory:"

    def test_environment_nesting_and_types(self):
        environ = {
            "GAMBIT_DATABASE__URL": "sqlite:///app.db",
            "GAMBIT_DATABASE__ECHO": "true",
            "GAMBIT_DATABASE__CONNECT_RETRIES": "5",
            "GAMBIT_DATABASE__OPTIONS": '{"timeout": 5}',
            "OTHER_SETTING": "ignored",
        }
        loader = ConfigLoader.load(environ=environ)
        assert loader.get("database.url") == "sqlite:///app.db"
        config = loader.database_config()
        assert config.echo is True
        assert config.connect_retries == 5
        assert config.options == {"timeout": 5}
        assert "other_setting" not in loader.to_dict()

    def test_env_file_below_environment(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "GAMBIT_DATABASE__URL=sqlite:///file.db\n"
            "GAMBIT_DATABASE__SLOW_QUERY_MS=250\n"
        )
        loader = ConfigLoader.load(
            env_file=str(env_file),
            environ={"GAMBIT_DATABASE__URL": "sqlite:///env.db"},
        )
        config = loader.database_config()
        assert config.url == "sqlite:///env.db"
        assert config.slow_query_ms == 250.0

    def test_missing_env_file_is_skipped(self, tmp_path):
        loader = ConfigLoader.load(env_file=str(tmp_path / "absent.env"), environ={})
        assert loader.to_dict() == {}

    def test_overrides_win(self):
        loader = ConfigLoader.load(
            environ={"GAMBIT_DATABASE__ECHO": "true", "GAMBIT_DATABASE__URL": "memory://"},
            overrides={"database": {"echo": False}},
        )
        config = loader.database_config()
        assert config.echo is False
        assert config.url == "memory://"

    def test_custom_prefix_and_section(self):
        loader = ConfigLoader.load(
            env_prefix="APP_",
            environ={"APP_REPLICA__URL": "memory://"},
        )
        assert loader.database_config("replica").url == "memory://"

    def test_get_default(self):
        loader = ConfigLoader.load(environ={})
        assert loader.get("database.url", "fallback") == "fallback"


class TestValidation:

    def test_unknown_key(self):
        loader = ConfigLoader.load(overrides={"database": {"hostname": "x"}}, environ={})
        with pytest.raises(ConfigInvalidFault) as exc:
            loader.database_config()
        assert exc.value.code == "CONFIG_INVALID"
        assert "hostname" in exc.value.message

    def test_wrong_type(self):
        loader = ConfigLoader.load(overrides={"database": {"connect_retries": "many"}}, environ={})
        with pytest.raises(ConfigInvalidFault):
            loader.database_config()

    def test_section_must_be_mapping(self):
        loader = ConfigLoader.load(overrides={"database": "sqlite://"}, environ={})
        with pytest.raises(ConfigInvalidFault):
            loader.database_config()

    def test_options_must_be_mapping(self):
        loader = ConfigLoader.load(overrides={"database": {"options": [1]}}, environ={})
        with pytest.raises(ConfigInvalidFault):
            loader.database_config()


class TestConfigureDatabase:

    def test_engine_from_config(self):
        db = Database.from_config(DatabaseConfig(url="memory://", echo=True))
        assert db.driver == "document"
        assert db.url == "memory://"

    def test_configure_registers_default(self):
        db = configure_database(DatabaseConfig(url="memory://"))
        assert get_database() is db
