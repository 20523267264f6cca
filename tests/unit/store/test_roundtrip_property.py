from hypothesis import given, settings
from hypothesis import strategies as st

from osrbac.models import new_model
from osrbac.store import OpenSearchAdapter

field = st.text(min_size=1, max_size=12)


def test_stored_rule_reads_back_unchanged(fake_client_factory):
    @settings(max_examples=60, deadline=None)
    @given(rule=st.lists(field, min_size=2, max_size=6), ptype=st.sampled_from(["p", "g"]))
    def check(rule, ptype):
        adapter = OpenSearchAdapter(fake_client_factory(), "prop")
        adapter.add_policy(ptype, ptype, rule)

        (record,) = list(adapter.iter_records())
        assert (record.ptype, record.rule) == (ptype, rule)

    check()


def test_grant_reloads_into_casbin_model_unchanged(fake_client_factory):
    @settings(max_examples=40, deadline=None)
    @given(rule=st.lists(field, min_size=3, max_size=3))
    def check(rule):
        adapter = OpenSearchAdapter(fake_client_factory(), "prop")
        adapter.add_policy("p", "p", rule)

        model = new_model("query_admin")
        adapter.load_policy(model)
        assert model["p"]["p"].policy == [rule]

    check()
