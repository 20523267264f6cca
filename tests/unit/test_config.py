import pytest
from pydantic import ValidationError

from osrbac.config import Settings


def test_defaults():
    s = Settings()
    assert s.opensearch_addresses == ["http://localhost:9200"]
    assert s.opensearch_index == "casbin_policies"
    assert s.extraction == "header_role"
    assert s.refresh_interval == 60.0
    assert s.page_size == 1000
    assert s.scroll_ttl == "1m"
    assert s.port == 3000
    assert s.model_path is None
    assert s.admin_token is None


def test_from_env_reads_known_variables():
    s = Settings.from_env(
        {
            "OPENSEARCH_ADDRESSES": "https://a:9200, https://b:9200,",
            "OPENSEARCH_INDEX": "rbac",
            "OPENSEARCH_USERNAME": "admin",
            "OPENSEARCH_PASSWORD": "hunter2",
            "OPENSEARCH_VERIFY_CERTS": "false",
            "OSRBAC_EXTRACTION": "query_admin",
            "OSRBAC_REFRESH_INTERVAL": "15",
            "OSRBAC_PAGE_SIZE": "500",
            "OSRBAC_LEGACY_LOAD": "yes",
            "OSRBAC_LOG_LEVEL": "debug",
            "OSRBAC_PORT": "8080",
            "MODEL_PATH": "/etc/osrbac/model.conf",
            "OSRBAC_ADMIN_TOKEN": "t0ken",
        }
    )
    assert s.opensearch_addresses == ["https://a:9200", "https://b:9200"]
    assert s.opensearch_index == "rbac"
    assert s.opensearch_password.get_secret_value() == "hunter2"
    assert "hunter2" not in repr(s)
    assert s.opensearch_verify_certs is False
    assert s.extraction == "query_admin"
    assert s.refresh_interval == 15.0
    assert s.page_size == 500
    assert s.legacy_load is True
    assert s.log_level == "DEBUG"
    assert s.port == 8080
    assert s.model_path == "/etc/osrbac/model.conf"
    assert s.admin_token.get_secret_value() == "t0ken"
    assert "t0ken" not in repr(s)


def test_empty_values_fall_back_to_defaults():
    s = Settings.from_env({"OPENSEARCH_INDEX": "", "OSRBAC_PORT": ""})
    assert s.opensearch_index == "casbin_policies"
    assert s.port == 3000


@pytest.mark.parametrize(
    "env",
    [
        {"OSRBAC_EXTRACTION": "jwt"},
        {"OSRBAC_PAGE_SIZE": "0"},
        {"OSRBAC_PAGE_SIZE": "20000"},
        {"OSRBAC_REFRESH_INTERVAL": "-1"},
        {"OSRBAC_LOG_LEVEL": "LOUD"},
        {"OPENSEARCH_ADDRESSES": " , "},
    ],
)
def test_invalid_values(env):
    with pytest.raises(ValidationError):
        Settings.from_env(env)
