import itertools

import pytest
from opensearchpy.exceptions import NotFoundError, RequestError


def _matches(source, query):
    if "match_all" in query:
        return True
    must = query.get("bool", {}).get("must", [])
    for clause in must:
        ((field, value),) = clause["term"].items()
        if source.get(field) != value:
            return False
    return True


class FakeIndices:
    def __init__(self, client):
        self._client = client
        self.created = []

    def exists(self, *, index):
        self._client._maybe_fail("indices.exists")
        return index in self._client.docs

    def create(self, *, index, body=None):
        self._client._maybe_fail("indices.create")
        if index in self._client.docs:
            raise RequestError(
                400,
                "resource_already_exists_exception",
                {"error": {"type": "resource_already_exists_exception"}},
            )
        self._client.docs[index] = {}
        self._client.mappings[index] = body
        self.created.append(index)


class FakeOpenSearch:
    """In-memory stand-in for ``opensearchpy.OpenSearch`` (only what the adapter calls)."""

    def __init__(self):
        self.docs = {}
        self.mappings = {}
        self.indices = FakeIndices(self)
        self.calls = []
        self.failures = {}
        self.scrolls = {}
        self.cleared = []
        self._ids = itertools.count(1)

    # test helpers -------------------------------------------------------

    def fail(self, method, exc, after=0):
        """Raise ``exc`` from ``method`` once it has been called ``after`` times."""
        self.failures[method] = [exc, after]

    def _maybe_fail(self, method):
        entry = self.failures.get(method)
        if entry is None:
            return
        if entry[1] > 0:
            entry[1] -= 1
            return
        raise entry[0]

    def put_raw(self, index, doc_id, source):
        self.docs.setdefault(index, {})[doc_id] = source

    def sources(self, index):
        return dict(self.docs.get(index, {}))

    # client API ---------------------------------------------------------

    def index(self, *, index, body, id=None, refresh=None):
        self.calls.append(("index", index, id, refresh))
        self._maybe_fail("index")
        doc_id = id or f"auto-{next(self._ids)}"
        self.docs.setdefault(index, {})[doc_id] = dict(body)
        return {"_id": doc_id, "result": "created"}

    def delete(self, *, index, id, refresh=None):
        self.calls.append(("delete", index, id, refresh))
        self._maybe_fail("delete")
        docs = self.docs.get(index, {})
        if id not in docs:
            raise NotFoundError(404, "not_found", {"_id": id, "result": "not_found"})
        del docs[id]
        return {"_id": id, "result": "deleted"}

    def delete_by_query(self, *, index, body, refresh=None):
        self.calls.append(("delete_by_query", index, body, refresh))
        self._maybe_fail("delete_by_query")
        docs = self.docs.get(index, {})
        doomed = [k for k, v in docs.items() if _matches(v, body["query"])]
        for k in doomed:
            del docs[k]
        return {"deleted": len(doomed)}

    def _page(self, scroll_id, scroll):
        remaining, size = self.scrolls[scroll_id]
        page, rest = remaining[:size], remaining[size:]
        self.scrolls[scroll_id] = (rest, size)
        hits = [{"_index": "x", "_id": k, "_source": v} for k, v in page]
        return {"_scroll_id": scroll_id, "hits": {"hits": hits}}

    def search(self, *, index, body=None, size=10, scroll=None):
        self.calls.append(("search", index, size, scroll))
        self._maybe_fail("search")
        items = list(self.docs.get(index, {}).items())
        scroll_id = f"scroll-{next(self._ids)}"
        self.scrolls[scroll_id] = (items, size)
        return self._page(scroll_id, scroll)

    def scroll(self, *, scroll_id, scroll=None):
        self.calls.append(("scroll", scroll_id, scroll))
        self._maybe_fail("scroll")
        return self._page(scroll_id, scroll)

    def clear_scroll(self, *, scroll_id):
        self.cleared.append(scroll_id)
        self.scrolls.pop(scroll_id, None)
        return {"succeeded": True}


@pytest.fixture
def fake_client():
    return FakeOpenSearch()


@pytest.fixture
def adapter(fake_client):
    from osrbac.store import OpenSearchAdapter

    return OpenSearchAdapter(fake_client, "policies", page_size=2)


@pytest.fixture(scope="session")
def fake_client_factory():
    return FakeOpenSearch
