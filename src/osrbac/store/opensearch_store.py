from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

from casbin import persist
from casbin.model import Model
from opensearchpy.exceptions import NotFoundError, RequestError, TransportError

from ..exceptions import (
    DocumentParseError,
    IncompatiblePolicy,
    InvalidRule,
    PartialLoad,
    StoreUnavailable,
)
from .schema import (
    FIELD_NAMES,
    INDEX_MAPPING,
    MIN_FIELDS,
    POLICY_SECTIONS,
    PolicyRecord,
    decode_hit,
    document_id,
    section_for_ptype,
)

logger = logging.getLogger("osrbac.store")

DEFAULT_INDEX = "casbin_policies"
DEFAULT_PAGE_SIZE = 1000
DEFAULT_SCROLL_TTL = "1m"
LEGACY_SECTION = "p"

_MATCH_ALL: Dict[str, Any] = {"query": {"match_all": {}}}


@contextmanager
def _store_call(action: str) -> Iterator[None]:
    """Translate opensearch-py transport errors into :class:`StoreUnavailable`."""
    try:
        yield
    except TransportError as e:
        raise StoreUnavailable(
            f"OpenSearch error while {action}", status_code=e.status_code, info=e.info
        ) from e


def build_filter_query(ptype: str, field_index: int, field_values: Sequence[str]) -> Dict[str, Any]:
    """
    Build the delete-by-query body for RemoveFilteredPolicy.

    ``ptype`` is always matched exactly; each non-empty value in
    ``field_values`` adds an exact term on ``v{field_index + i}``. Empty values
    are wildcards.
    """
    if field_index < 0:
        raise InvalidRule(f"field index must be >= 0, got {field_index}")

    must: List[Dict[str, Any]] = [{"term": {"ptype": ptype}}]
    for offset, value in enumerate(field_values):
        if value == "" or value is None:
            continue
        position = field_index + offset
        if position >= len(FIELD_NAMES):
            raise InvalidRule(f"field v{position} does not exist (max v{len(FIELD_NAMES) - 1})")
        must.append({"term": {FIELD_NAMES[position]: value}})
    return {"query": {"bool": {"must": must}}}


def _model_rules(model: Model) -> Iterator[tuple]:
    for sec in POLICY_SECTIONS:
        for ptype, assertion in (model[sec] or {}).items():
            for rule in assertion.policy:
                yield sec, ptype, rule


def _rule_fits(sec: str, assertion: Any, fields: Sequence[str]) -> bool:
    # A grant must match the policy definition exactly or every enforce call
    # fails; a grouping rule needs at least as many fields as its "_" slots.
    if sec == "p":
        return len(fields) == len(assertion.tokens)
    return len(fields) >= assertion.value.count("_")


class OpenSearchAdapter(persist.Adapter):
    """
    Casbin policy adapter backed by an OpenSearch index.

    Writes (``add_policy``, ``remove_policy``, ``remove_filtered_policy``,
    ``save_policy``) are synchronous and request an index refresh so the next
    load sees them. Nothing here touches an enforcer's in-memory model except
    ``load_policy``; enforcement picks up writes on the next reload.

    Usable directly as ``casbin.Enforcer("model.conf", OpenSearchAdapter(client))``.

    The client is anything exposing the opensearch-py ``OpenSearch`` methods
    used below; pass your own to control auth, TLS and timeouts, or use
    :meth:`from_settings`.
    """

    def __init__(
        self,
        client: Any,
        index: str = DEFAULT_INDEX,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        scroll_ttl: str = DEFAULT_SCROLL_TTL,
        legacy_load: bool = False,
        create_index: bool = True,
    ) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self._client = client
        self.index = index
        self.page_size = int(page_size)
        self.scroll_ttl = scroll_ttl
        self.legacy_load = bool(legacy_load)
        if create_index:
            self.ensure_index()

    # --------------------------------------------------------------------- #
    # Client setup
    # --------------------------------------------------------------------- #

    @classmethod
    def from_settings(cls, settings: Any, *, create_index: bool = True) -> "OpenSearchAdapter":
        return cls(
            cls._build_client(settings),
            settings.opensearch_index,
            page_size=settings.page_size,
            scroll_ttl=settings.scroll_ttl,
            legacy_load=settings.legacy_load,
            create_index=create_index,
        )

    @staticmethod
    def _build_client(settings: Any) -> Any:
        from opensearchpy import OpenSearch

        params: Dict[str, Any] = {
            "hosts": list(settings.opensearch_addresses),
            "verify_certs": settings.opensearch_verify_certs,
            "timeout": settings.opensearch_timeout,
        }
        if settings.opensearch_username:
            password = settings.opensearch_password
            params["http_auth"] = (
                settings.opensearch_username,
                password.get_secret_value() if password is not None else "",
            )
        return OpenSearch(**params)

    @property
    def client(self) -> Any:
        return self._client

    # --------------------------------------------------------------------- #
    # Schema
    # --------------------------------------------------------------------- #

    def ensure_index(self) -> bool:
        """
        Create the index with the keyword mapping unless it already exists.

        Returns True when this call created the index. Losing a creation race
        to another instance counts as success.
        """
        with _store_call(f"checking index {self.index}"):
            if self._client.indices.exists(index=self.index):
                return False

        try:
            self._client.indices.create(index=self.index, body=INDEX_MAPPING)
        except RequestError as e:
            if e.error == "resource_already_exists_exception":
                logger.info("OSRBAC: index %s was created concurrently", self.index)
                return False
            raise StoreUnavailable(
                f"failed to create index {self.index}", status_code=e.status_code, info=e.info
            ) from e
        except TransportError as e:
            raise StoreUnavailable(
                f"failed to create index {self.index}", status_code=e.status_code, info=e.info
            ) from e

        logger.info("OSRBAC: index %s created", self.index)
        return True

    # --------------------------------------------------------------------- #
    # Persistence interface
    # --------------------------------------------------------------------- #

    def add_policy(self, sec: str, ptype: str, rule: Sequence[str]) -> bool:
        record = PolicyRecord.from_rule(ptype, rule)
        with _store_call(f"indexing policy {record.doc_id}"):
            self._client.index(
                index=self.index,
                id=record.doc_id,
                body=record.to_document(),
                refresh=True,
            )
        logger.debug("OSRBAC: stored %s %s as %s", ptype, record.rule, record.doc_id)
        return True

    def remove_policy(self, sec: str, ptype: str, rule: Sequence[str]) -> bool:
        if len(rule) < MIN_FIELDS:
            raise InvalidRule(f"rule needs at least {MIN_FIELDS} fields, got {list(rule)!r}")
        doc_id = document_id(rule)
        try:
            self._client.delete(index=self.index, id=doc_id, refresh=True)
        except NotFoundError:
            logger.debug("OSRBAC: policy %s already absent", doc_id)
        except TransportError as e:
            raise StoreUnavailable(
                f"OpenSearch error while deleting policy {doc_id}",
                status_code=e.status_code,
                info=e.info,
            ) from e
        return True

    def remove_filtered_policy(
        self, sec: str, ptype: str, field_index: int, *field_values: str
    ) -> bool:
        body = build_filter_query(ptype, field_index, field_values)
        with _store_call("deleting filtered policies"):
            response = self._client.delete_by_query(index=self.index, body=body, refresh=True)
        deleted = response.get("deleted") if isinstance(response, dict) else None
        logger.info("OSRBAC: removed %s policies matching %s", deleted, body["query"])
        return True

    def save_policy(self, model: Model) -> bool:
        """
        Replace the whole index with the rules held in ``model``.

        Destructive: the index is emptied first. A failure part-way through
        leaves only the rules written so far.
        """
        self.clear_policies()
        for sec, ptype, rule in _model_rules(model):
            try:
                self.add_policy(sec, ptype, rule)
            except StoreUnavailable:
                logger.error(
                    "OSRBAC: save aborted at section=%s ptype=%s rule=%s", sec, ptype, list(rule)
                )
                raise
        return True

    def load_policy(self, model: Model) -> None:
        """
        Append every stored rule to ``model[sec][ptype].policy``.

        Rules go to the section named by their ptype. Documents that do not
        decode, whose ptype the model does not define, or whose field count
        does not fit the model's definition are logged and skipped.

        ``legacy_load`` puts every rule into section "p" untouched, as older
        deployments did; a rule whose ptype has no "p" definition (typically
        ``g``) then raises :class:`IncompatiblePolicy` instead of being lost.

        A store failure propagates; ``model`` is then partially filled and
        must not be used.
        """
        logger.info("OSRBAC: loading policies from index %s", self.index)
        count = 0
        for record in self.iter_records():
            if self.legacy_load:
                self._append_legacy(model, record)
                count += 1
                continue

            try:
                sec = section_for_ptype(record.ptype)
            except DocumentParseError as e:
                logger.warning("OSRBAC: skipping rule %s: %s", record.rule, e)
                continue

            assertion = (model[sec] or {}).get(record.ptype)
            if assertion is None:
                logger.warning(
                    "OSRBAC: model defines no %s.%s, skipping rule %s", sec, record.ptype, record.rule
                )
                continue
            if not _rule_fits(sec, assertion, record.fields):
                logger.warning(
                    "OSRBAC: rule %s does not fit %s = %s, skipping",
                    record.rule,
                    record.ptype,
                    assertion.value,
                )
                continue
            assertion.policy.append(record.rule)
            count += 1

        logger.info("OSRBAC: loaded %d policy rules from %s", count, self.index)

    @staticmethod
    def _append_legacy(model: Model, record: PolicyRecord) -> None:
        assertion = (model[LEGACY_SECTION] or {}).get(record.ptype)
        if assertion is None:
            raise IncompatiblePolicy(
                f"legacy load puts every rule in section {LEGACY_SECTION!r}, but the model "
                f"has no {LEGACY_SECTION}.{record.ptype} definition for rule {record.rule}; "
                f"disable legacy loading to load {record.ptype} rules"
            )
        assertion.policy.append(record.rule)

    # --------------------------------------------------------------------- #
    # Bulk access
    # --------------------------------------------------------------------- #

    def clear_policies(self) -> None:
        with _store_call("clearing policies"):
            self._client.delete_by_query(index=self.index, body=_MATCH_ALL, refresh=True)

    def iter_records(self) -> Iterator[PolicyRecord]:
        """
        Yield every decodable policy record using a scroll cursor.

        Raises :class:`StoreUnavailable` if the initial search fails and
        :class:`PartialLoad` if a later page fails.
        """
        with _store_call("performing initial search"):
            response = self._client.search(
                index=self.index,
                body=_MATCH_ALL,
                size=self.page_size,
                scroll=self.scroll_ttl,
            )

        scroll_id: Optional[str] = None
        yielded = 0
        pages = 0
        try:
            while True:
                hits = self._page_hits(response, pages, yielded)
                sid = response.get("_scroll_id")
                if isinstance(sid, str) and sid:
                    scroll_id = sid

                if not hits:
                    logger.debug("OSRBAC: no more hits after %d pages", pages)
                    break
                pages += 1

                for hit in hits:
                    try:
                        record = decode_hit(hit, legacy=self.legacy_load)
                    except DocumentParseError as e:
                        logger.warning("OSRBAC: skipping policy document %s: %s", e.doc_id, e)
                        continue
                    yielded += 1
                    yield record

                if not isinstance(sid, str) or not sid:
                    logger.debug("OSRBAC: no scroll id returned, stopping")
                    break

                try:
                    response = self._client.scroll(scroll_id=sid, scroll=self.scroll_ttl)
                except TransportError as e:
                    raise PartialLoad(
                        f"scroll failed after {pages} pages",
                        loaded=yielded,
                        status_code=e.status_code,
                        info=e.info,
                    ) from e
        finally:
            if scroll_id:
                self._clear_scroll(scroll_id)

    @staticmethod
    def _page_hits(response: Any, pages: int, yielded: int) -> List[Any]:
        hits = None
        if isinstance(response, dict):
            outer = response.get("hits")
            if isinstance(outer, dict):
                hits = outer.get("hits")
        if isinstance(hits, list):
            return hits
        if pages:
            raise PartialLoad(
                f"malformed scroll response after {pages} pages", loaded=yielded, info=response
            )
        raise StoreUnavailable("malformed search response", info=response)

    def _clear_scroll(self, scroll_id: str) -> None:
        try:
            self._client.clear_scroll(scroll_id=scroll_id)
        except TransportError as e:
            # The context expires on its own after the scroll TTL.
            logger.warning("OSRBAC: could not clear scroll context: %s", e)


__all__ = [
    "DEFAULT_INDEX",
    "DEFAULT_PAGE_SIZE",
    "DEFAULT_SCROLL_TTL",
    "OpenSearchAdapter",
    "build_filter_query",
]
