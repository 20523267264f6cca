"""Built-in Casbin models, one per request extraction strategy."""

from __future__ import annotations

from importlib import resources
from typing import Optional

import casbin
from casbin.model import Model

STRATEGIES = ("header_role", "query_admin")


def model_text(strategy: str) -> str:
    if strategy not in STRATEGIES:
        raise ValueError(f"unknown strategy {strategy!r}; expected one of {list(STRATEGIES)}")
    return resources.files(__name__).joinpath(f"{strategy}.conf").read_text(encoding="utf-8")


def new_model(strategy: str = "header_role", model_path: Optional[str] = None) -> Model:
    """A fresh, empty Casbin model: ``model_path`` when given, else the built-in one."""
    if model_path:
        return casbin.Enforcer.new_model(path=model_path)
    return casbin.Enforcer.new_model(text=model_text(strategy))


__all__ = ["STRATEGIES", "model_text", "new_model"]
