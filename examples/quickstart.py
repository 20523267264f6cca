"""Store a few rules in a local OpenSearch and check requests against them.

    docker run -p 9200:9200 -e discovery.type=single-node \
        -e DISABLE_SECURITY_PLUGIN=true opensearchproject/opensearch:2
    python examples/quickstart.py
"""

from opensearchpy import OpenSearch

from osrbac import OpenSearchAdapter, PolicyGuard


def main() -> None:
    adapter = OpenSearchAdapter(OpenSearch(["http://localhost:9200"]), "osrbac_quickstart")
    adapter.clear_policies()

    guard = PolicyGuard(adapter)
    guard.add_policy("viewer", "/reports", "GET")
    guard.add_policy("editor", "/reports", "*")
    guard.add_policy("alice", "viewer", ptype="g")
    guard.add_policy("bob", "editor", ptype="g")
    guard.add_policy("editor", "viewer", ptype="g")

    print(guard.enforce("alice", "viewer", "/reports", "GET"))  # False, not loaded yet
    guard.reload()
    print(guard.enforce("alice", "viewer", "/reports", "GET"))  # True
    print(guard.enforce("alice", "viewer", "/reports", "DELETE"))  # False
    print(guard.enforce("bob", "viewer", "/reports", "GET"))  # True, editor inherits viewer


if __name__ == "__main__":
    main()
