import casbin
import pytest
from casbin import persist

from osrbac.models import STRATEGIES, model_text, new_model
from osrbac.store import OpenSearchAdapter


def _enforcer(fake_client, strategy, p=(), g=()):
    adapter = OpenSearchAdapter(fake_client, "policies")
    for rule in p:
        adapter.add_policy("p", "p", list(rule))
    for rule in g:
        adapter.add_policy("g", "g", list(rule))
    return casbin.Enforcer(new_model(strategy), adapter)


def test_adapter_is_a_casbin_persistence_backend(fake_client, tmp_path):
    conf = tmp_path / "model.conf"
    conf.write_text(model_text("query_admin"), encoding="utf-8")
    adapter = OpenSearchAdapter(fake_client, "policies")
    adapter.add_policy("p", "p", ["alice", "reports", "admin"])

    assert isinstance(adapter, persist.Adapter)
    e = casbin.Enforcer(str(conf), adapter)
    assert e.enforce("alice", "reports", "admin") is True
    assert e.enforce("bob", "reports", "admin") is False


def test_unknown_strategy():
    assert STRATEGIES == ("header_role", "query_admin")
    with pytest.raises(ValueError):
        model_text("abac")


def test_new_model_from_path(tmp_path):
    conf = tmp_path / "custom.conf"
    conf.write_text(model_text("header_role"), encoding="utf-8")
    m = new_model("query_admin", str(conf))
    assert len(m["r"]["r"].tokens) == 4


class TestHeaderRole:
    @pytest.fixture(autouse=True)
    def _setup(self, fake_client):
        self.e = _enforcer(
            fake_client,
            "header_role",
            p=[("viewer", "reports", "GET"), ("admin", "/*", "*"), ("editor", "docs/*", "POST")],
            g=[("alice", "viewer"), ("root", "admin"), ("carol", "editor"), ("editor", "viewer")],
        )

    def test_held_role_with_matching_grant(self):
        assert self.e.enforce("alice", "viewer", "reports", "GET") is True

    def test_wrong_method(self):
        assert self.e.enforce("alice", "viewer", "reports", "DELETE") is False

    def test_claimed_role_not_held(self):
        assert self.e.enforce("alice", "admin", "reports", "GET") is False

    def test_empty_role_is_denied(self):
        assert self.e.enforce("alice", "", "reports", "GET") is False

    def test_wildcard_method_and_path(self):
        assert self.e.enforce("root", "admin", "/x/y", "DELETE") is True

    def test_inherited_role(self):
        assert self.e.enforce("carol", "viewer", "reports", "GET") is True
        assert self.e.enforce("carol", "editor", "docs/a", "POST") is True

    def test_wrong_request_size_raises(self):
        with pytest.raises(RuntimeError):
            self.e.enforce("alice", "reports", "GET")


class TestQueryAdmin:
    @pytest.fixture(autouse=True)
    def _setup(self, fake_client):
        self.e = _enforcer(
            fake_client,
            "query_admin",
            p=[("alice", "reports", "admin"), ("ops", "wiki", "viewer")],
            g=[("bob", "ops")],
        )

    def test_direct_grant(self):
        assert self.e.enforce("alice", "reports", "admin") is True
        assert self.e.enforce("alice", "reports", "viewer") is False

    def test_group_grant(self):
        assert self.e.enforce("bob", "wiki", "viewer") is True
        assert self.e.enforce("bob", "reports", "admin") is False

    def test_resource_is_exact(self):
        assert self.e.enforce("alice", "reports/x", "admin") is False
