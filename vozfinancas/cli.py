"""
Command-line entry point.

    vozfinancas listen            unlock, then record until stop or silence
    vozfinancas list [--date D]   print expenses (optionally of one day)
    vozfinancas summary           print today's total and totals by category
    vozfinancas serve             run the companion REST backend
"""

import argparse
import asyncio
import getpass
import sys
from datetime import date
from typing import Optional, Sequence

import structlog

from vozfinancas.audit import configure_logging
from vozfinancas.auth import GateError, PasswordGate
from vozfinancas.config import get_settings, validate_all_settings
from vozfinancas.models.status import AppStatus
from vozfinancas.orchestrator import AppComponents, create_app_components


log = structlog.get_logger(__name__)


def _money(value) -> str:
    return f"R$ {value:.2f}".replace(".", ",")


def _unlock(gate: PasswordGate) -> bool:
    if gate.needs_setup:
        password = getpass.getpass("Crie uma senha: ")
        try:
            gate.setup(password)
        except GateError as e:
            print(e, file=sys.stderr)
            return False
        return True
    if gate.unlock(getpass.getpass("Senha: ")):
        return True
    print("Senha incorreta.", file=sys.stderr)
    return False


async def _listen(components: AppComponents) -> AppStatus:
    session = components.recording_session(
        on_status=lambda status: print(f"[{status.value}]"),
        on_text=lambda text: print(f"Assistente: {text}"),
    )
    if components.replicator is not None:
        await components.replicator.probe()
    try:
        status = await session.run_until_closed()
    finally:
        await session.stop()
        if components.replicator is not None:
            await components.replicator.drain()
    return status


def cmd_listen(components: AppComponents, args: argparse.Namespace) -> int:
    checks = validate_all_settings()
    if not checks["gemini"]:
        print(f"Configuração inválida: {checks['gemini_error']}", file=sys.stderr)
        return 2
    if not _unlock(components.gate):
        return 1
    try:
        status = asyncio.run(_listen(components))
    except KeyboardInterrupt:
        return 130
    return 1 if status.is_error else 0


def cmd_list(components: AppComponents, args: argparse.Namespace) -> int:
    ledger = components.ledger
    expenses = ledger.expenses_on(args.date) if args.date else ledger.expenses
    if not expenses:
        print("Nenhum gasto registrado.")
        return 0
    for expense in expenses:
        print(
            f"{expense.id}  {expense.date:%Y-%m-%d %H:%M}  "
            f"{_money(expense.amount):>12}  {expense.category_name:<14} {expense.description}"
        )
    return 0


def cmd_summary(components: AppComponents, args: argparse.Namespace) -> int:
    summary = components.ledger.refresh_summary()
    print(f"Hoje: {_money(summary.daily)}")
    for entry in summary.by_category:
        print(f"  {entry.name:<14} {_money(entry.total):>12}")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from vozfinancas.api import create_app

    server = get_settings().server
    uvicorn.run(
        create_app(),
        host=args.host or server.host,
        port=args.port or server.port,
        log_config=None,
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="vozfinancas", description="Voice expense tracker")
    p.add_argument("--debug", action="store_true", help="console logs at debug level")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("listen", help="record one voice session")

    p_list = sub.add_parser("list", help="list expenses")
    p_list.add_argument("--date", type=date.fromisoformat, help="only this day (YYYY-MM-DD)")

    sub.add_parser("summary", help="show totals")

    p_serve = sub.add_parser("serve", help="run the REST backend")
    p_serve.add_argument("--host")
    p_serve.add_argument("--port", type=int)
    return p


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(debug=args.debug or get_settings().app.debug_mode)

    if args.command == "serve":
        return cmd_serve(args)

    components = create_app_components()
    handlers = {
        "listen": cmd_listen,
        "list": cmd_list,
        "summary": cmd_summary,
    }
    return handlers[args.command](components, args)


if __name__ == "__main__":
    raise SystemExit(main())
