from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Optional, Sequence

from pydantic import ValidationError

from . import __version__
from .config import Settings
from .exceptions import OsrbacError
from .store.opensearch_store import OpenSearchAdapter
from .store.schema import section_for_ptype

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_USAGE = 2


def _make_adapter(settings: Settings) -> Any:
    return OpenSearchAdapter.from_settings(settings, create_index=False)


def _fail(message: str, code: int = EXIT_ERROR) -> int:
    print(f"osrbac: {message}", file=sys.stderr)
    return code


def cmd_serve(ns: argparse.Namespace) -> int:
    import uvicorn

    from .app import create_app
    from .logging import configure_logging

    settings = Settings.from_env()
    configure_logging(settings.log_level)
    uvicorn.run(
        create_app(settings),
        host=ns.host or settings.host,
        port=ns.port or settings.port,
        log_level=settings.log_level.lower(),
    )
    return EXIT_OK


def cmd_init_index(ns: argparse.Namespace) -> int:
    settings = Settings.from_env()
    adapter = _make_adapter(settings)
    created = adapter.ensure_index()
    print(f"index {adapter.index} {'created' if created else 'already exists'}")
    return EXIT_OK


def cmd_list(ns: argparse.Namespace) -> int:
    adapter = _make_adapter(Settings.from_env())
    records = [{"ptype": r.ptype, "rule": r.rule, "id": r.doc_id} for r in adapter.iter_records()]
    if ns.format == "json":
        print(json.dumps(records, ensure_ascii=False))
    else:
        for rec in records:
            print(", ".join([rec["ptype"], *rec["rule"]]))
    return EXIT_OK


def cmd_add(ns: argparse.Namespace) -> int:
    adapter = _make_adapter(Settings.from_env())
    adapter.add_policy(section_for_ptype(ns.ptype), ns.ptype, ns.fields)
    print("OK")
    return EXIT_OK


def cmd_remove(ns: argparse.Namespace) -> int:
    adapter = _make_adapter(Settings.from_env())
    adapter.remove_policy(section_for_ptype(ns.ptype), ns.ptype, ns.fields)
    print("OK")
    return EXIT_OK


def cmd_remove_filtered(ns: argparse.Namespace) -> int:
    adapter = _make_adapter(Settings.from_env())
    adapter.remove_filtered_policy(section_for_ptype(ns.ptype), ns.ptype, ns.offset, *ns.values)
    print("OK")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="osrbac",
        description="RBAC enforcement with policies stored in OpenSearch.",
        epilog="Connection settings come from OPENSEARCH_* and OSRBAC_* environment variables.",
    )
    parser.add_argument("--version", action="store_true", help="print version and exit")
    sub = parser.add_subparsers(dest="command")

    p_serve = sub.add_parser("serve", help="run the HTTP service")
    p_serve.add_argument("--host", default=None)
    p_serve.add_argument("--port", type=int, default=None)
    p_serve.set_defaults(func=cmd_serve)

    p_init = sub.add_parser("init-index", help="create the policy index if missing")
    p_init.set_defaults(func=cmd_init_index)

    p_pol = sub.add_parser("policies", help="inspect or edit stored policies")
    pol = p_pol.add_subparsers(dest="policies_command")

    p_list = pol.add_parser("list", help="print every stored rule")
    p_list.add_argument("--format", choices=["json", "text"], default="text")
    p_list.set_defaults(func=cmd_list)

    p_add = pol.add_parser("add", help="store one rule")
    p_add.add_argument("ptype")
    p_add.add_argument("fields", nargs="+")
    p_add.set_defaults(func=cmd_add)

    p_rm = pol.add_parser("remove", help="delete one rule by its key fields")
    p_rm.add_argument("ptype")
    p_rm.add_argument("fields", nargs="+")
    p_rm.set_defaults(func=cmd_remove)

    p_rmf = pol.add_parser("remove-filtered", help="delete rules matching field values")
    p_rmf.add_argument("ptype")
    p_rmf.add_argument("offset", type=int)
    p_rmf.add_argument("values", nargs="+", help='use "" as a wildcard')
    p_rmf.set_defaults(func=cmd_remove_filtered)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    ns = parser.parse_args(list(argv) if argv is not None else None)

    if ns.version:
        print(f"osrbac {__version__}")
        return EXIT_OK

    func = getattr(ns, "func", None)
    if func is None:
        parser.print_usage(sys.stderr)
        return EXIT_USAGE

    try:
        rc = func(ns)
    except ValidationError as e:
        return _fail(f"invalid configuration: {e}")
    except OsrbacError as e:
        return _fail(str(e))
    return rc if isinstance(rc, int) else EXIT_OK


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
