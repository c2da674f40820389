import config
from config import engine_options


def test_mysql_engine_bounds_every_query():
    options = engine_options("mysql+pymysql://root:@localhost/progress_lens")

    assert options["pool_timeout"] == 10
    assert options["connect_args"] == {"connect_timeout": 5, "read_timeout": 10, "write_timeout": 10}


def test_non_mysql_engine_gets_no_driver_arguments():
    assert "connect_args" not in engine_options("sqlite:///progress_lens.db")


def test_config_classes_use_engine_options():
    assert config.DevConfig.SQLALCHEMY_ENGINE_OPTIONS == engine_options(config.DevConfig.SQLALCHEMY_DATABASE_URI)
    assert config.TestConfig.SQLALCHEMY_ENGINE_OPTIONS == {}
