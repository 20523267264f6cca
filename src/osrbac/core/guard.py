from __future__ import annotations

import logging
import threading
import time
from typing import Any, Optional

import casbin
from casbin.model import Model

from ..models import STRATEGIES, new_model
from ..store.schema import POLICY_SECTIONS, section_for_ptype

logger = logging.getLogger("osrbac.guard")


def rule_count(model: Model) -> int:
    return sum(
        len(assertion.policy)
        for sec in POLICY_SECTIONS
        for assertion in (model[sec] or {}).values()
    )


class PolicyGuard:
    """
    Owner of the live Casbin enforcer.

    The guard holds one ``casbin.Enforcer`` snapshot. Request handlers read it
    through :meth:`enforce`; :meth:`reload` builds a complete replacement from
    the adapter without holding any lock and then swaps it in. A reload that
    fails leaves the previous snapshot in place, so a half-loaded model is
    never consulted. Installed snapshots are never mutated.

    Administrative writes go straight to the adapter. They become visible to
    :meth:`enforce` only after the next reload.
    """

    def __init__(
        self,
        adapter: Any,
        *,
        engine: str = "header_role",
        model_path: Optional[str] = None,
    ) -> None:
        if engine not in STRATEGIES:
            raise ValueError(f"unknown engine {engine!r}; expected one of {list(STRATEGIES)}")
        self.adapter = adapter
        self.engine = engine
        self.model_path = model_path

        self._lock = threading.Lock()
        # No adapter: an empty snapshot that denies everything until the first reload.
        self._enforcer = casbin.Enforcer(self._new_model())
        self._loaded_at: float | None = None

    def _new_model(self) -> Model:
        return new_model(self.engine, self.model_path)

    # --------------------------------------------------------------------- #
    # Snapshot access
    # --------------------------------------------------------------------- #

    def snapshot(self) -> casbin.Enforcer:
        with self._lock:
            return self._enforcer

    @property
    def model(self) -> Model:
        return self.snapshot().get_model()

    def enforce(self, *rvals: str) -> bool:
        """Evaluate a request against the current snapshot.

        Engine errors propagate; callers must treat them as a denial.
        """
        return self.snapshot().enforce(*rvals)

    @property
    def rule_count(self) -> int:
        return rule_count(self.model)

    @property
    def loaded_at(self) -> float | None:
        with self._lock:
            return self._loaded_at

    # --------------------------------------------------------------------- #
    # Loading
    # --------------------------------------------------------------------- #

    def reload(self) -> int:
        """Load every stored rule into a fresh enforcer and install it.

        Returns the number of rules installed. Store errors propagate and the
        current snapshot is kept.
        """
        # casbin.Enforcer loads the policy and builds role links on construction.
        enforcer = casbin.Enforcer(self._new_model(), self.adapter)
        count = rule_count(enforcer.get_model())

        with self._lock:
            self._enforcer = enforcer
            self._loaded_at = time.time()
        logger.info("OSRBAC: installed policy snapshot with %d rules", count)
        return count

    # --------------------------------------------------------------------- #
    # Administrative writes (store only)
    # --------------------------------------------------------------------- #

    def add_policy(self, *rule: str, ptype: str = "p") -> bool:
        return self.adapter.add_policy(section_for_ptype(ptype), ptype, list(rule))

    def remove_policy(self, *rule: str, ptype: str = "p") -> bool:
        return self.adapter.remove_policy(section_for_ptype(ptype), ptype, list(rule))

    def remove_filtered_policy(self, field_index: int, *field_values: str, ptype: str = "p") -> bool:
        return self.adapter.remove_filtered_policy(
            section_for_ptype(ptype), ptype, field_index, *field_values
        )

    def save_policy(self) -> bool:
        """Overwrite the store with the rules of the current snapshot."""
        return self.adapter.save_policy(self.model)
