from __future__ import annotations

import logging
import os
import queue
import threading
from datetime import date
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from src.livequeue.config import LiveQueueConfig
from src.livequeue.core.engine.engine import LiveQueueEngine
from src.livequeue.core.engine.loop import EngineLoop
from src.livequeue.core.models.enums import FulfillmentType
from src.livequeue.core.models.order import Order, OrderDetail
from src.livequeue.core.models.snapshot import EngineSnapshot
from src.livequeue.core.orders.history import OrderHistory
from src.livequeue.gateway.auth import login
from src.livequeue.gateway.rest import OrdersREST
from src.livequeue.notifications.alerts import default_alert
from src.livequeue.push.channel import build_socket_url
from src.livequeue.push.supervisor import PushSupervisor
from src.livequeue.session.session import AppSession

log = logging.getLogger("livequeue.run_live_orders")

DEFAULT_CONFIG = "config/live_orders.yaml"

HELP = (
    "Commands:\n"
    "  tab new|in-progress|complete\n"
    "  filter all|collection|delivery|table\n"
    "  from 0|1|2            - start from today / yesterday / two days ago\n"
    "  refresh | list\n"
    "  open <order id> | back\n"
    "  accept | reject | ready | cancel | delay <minutes> | print\n"
    "  history YYYY-MM-DD YYYY-MM-DD\n"
    "  exit\n"
)


class ConsoleConfirm:
    """Blocks the engine thread until the console thread supplies an answer."""

    def __init__(self) -> None:
        self._pending = threading.Event()
        self._answers: "queue.Queue[bool]" = queue.Queue()

    def __call__(self, prompt: str) -> bool:
        print(f"{prompt} [y/N]")
        self._pending.set()
        try:
            return self._answers.get()
        finally:
            self._pending.clear()

    def offer(self, line: str) -> bool:
        if not self._pending.is_set():
            return False
        self._answers.put(line.strip().lower() in {"y", "yes"})
        return True


class ConsolePrinter:
    """Writes a plain-text receipt to stdout."""

    def print_order(self, detail: OrderDetail) -> None:
        o = detail.order
        print(f"--- order {o.order_number or o.id} ---")
        print(f"{o.customer}  {o.fulfillment.value}")
        for it in detail.items:
            print(f"{it.qty} x {it.name:<30} £{it.price}")
            for a in it.attributes:
                print(f"    {a.name}: {', '.join(a.items)}")
            if it.notes:
                print(f"    note: {it.notes}")
        c = detail.charges
        if c.discount:
            print(f"discount  -£{c.discount}")
        print(f"total      £{o.total}")
        if detail.customer_notes:
            print(f"notes: {detail.customer_notes}")


def summarize(s: EngineSnapshot) -> str:
    parts = [
        f"tab={s.tab.value}",
        f"filter={s.type_filter.value}",
        f"window={s.window.start_str}..{s.window.end_str}",
        f"new={s.counts.new} in_progress={s.counts.in_progress} complete={s.counts.complete}",
        f"shown={len(s.orders)}",
        "online" if s.connected else "offline",
    ]
    if s.loading:
        parts.append("loading")
    if s.detail.order_id:
        parts.append(f"detail={s.detail.order_id}:{s.detail.state.value}")
    if s.error:
        parts.append(f"error={s.error!r}")
    return " | ".join(parts)


def format_order(o: Order, default_eta: int) -> str:
    kind = "Delivery" if o.fulfillment is FulfillmentType.DELIVERY else "Collection"
    return f"{o.id:<26} {o.customer:<24} {kind:<10} £{o.total:>8} • {o.eta_or(default_eta)} mins"


def handle_cmd(loop: EngineLoop, line: str) -> Optional[str]:
    """Parse one console line into an engine message. Returns an error text or None."""
    parts = (line or "").strip().split()
    if not parts:
        return None
    cmd, args = parts[0].lower(), parts[1:]

    if cmd in ("help", "h", "?"):
        return HELP
    if cmd == "tab" and len(args) == 1:
        loop.post("set_tab", args[0])
    elif cmd == "filter" and len(args) == 1:
        loop.post("set_type_filter", args[0])
    elif cmd == "from" and len(args) == 1 and args[0].isdigit():
        loop.post("set_start_offset", int(args[0]))
    elif cmd == "refresh":
        loop.post("refresh")
    elif cmd == "open" and len(args) == 1:
        loop.post("select_order", args[0])
    elif cmd == "back":
        loop.post("close_detail")
    elif cmd in ("accept", "reject", "ready", "cancel"):
        loop.post(cmd)
    elif cmd == "print":
        loop.post("print_receipt")
    elif cmd == "delay" and len(args) == 1 and args[0].isdigit():
        loop.post("delay", int(args[0]))
    else:
        return f"unknown command: {line.strip()}\n{HELP}"
    return None


def print_history(history: OrderHistory, line: str) -> None:
    args = line.split()[1:]
    try:
        a, b = (date.fromisoformat(x) for x in args)
    except ValueError:
        print("usage: history YYYY-MM-DD YYYY-MM-DD")
        return
    if not history.load(a, b):
        print(history.error)
        return
    for o in history.orders:
        print(f"{o.status:<11} {o.id:<26} {o.customer:<24} £{o.total:>8}")


def main() -> None:
    # .env never overrides explicit env vars
    env_loaded = load_dotenv(override=False)

    # -------------------------------------------------------------------------
    # LOGGING
    # -------------------------------------------------------------------------
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    log.info("=== RUN LIVE ORDERS START ===")
    if env_loaded:
        log.info("Loaded .env: %s", str(Path(".env").resolve()))

    cfg_file = Path(os.environ.get("LIVE_ORDERS_CONFIG", "").strip() or DEFAULT_CONFIG)
    cfg = LiveQueueConfig.from_file(cfg_file) if cfg_file.exists() else LiveQueueConfig()
    log.info("config=%s api=%s poll=%.0fs", str(cfg_file), cfg.api_base_url, cfg.poll_interval_sec)

    email = os.environ.get(cfg.email_env, "").strip()
    password = os.environ.get(cfg.password_env, "")
    if not email or not password:
        raise SystemExit(f"{cfg.email_env} / {cfg.password_env} are not set")

    session = AppSession()
    rest = OrdersREST(
        token_provider=lambda: session.token,
        base_url=cfg.api_base_url,
        timeout=cfg.timeout_sec,
        max_retries=cfg.max_retries,
        backoff_base=cfg.backoff_base,
    )

    res = login(rest, email=email, password=password)
    session.login(res.token, res.identity)
    log.info("Dashboard: %s %s", session.display_name or "-", session.branch_name or "")

    confirm = ConsoleConfirm()
    engine = LiveQueueEngine(
        gateway=rest,
        session=session,
        alert=default_alert(),
        confirm=confirm,
        printer=ConsolePrinter(),
        delay_choices=cfg.delay_choices,
    )
    engine.subscribe(lambda s: log.info("%s", summarize(s)))

    history = OrderHistory(gateway=rest, session=session)

    loop = EngineLoop(engine, poll_interval_sec=cfg.poll_interval_sec)
    supervisor = PushSupervisor(
        session=session,
        url=build_socket_url(cfg.socket_url, cfg.socket_path),
        on_event=loop.post_push,
        on_state=loop.post_connection,
        reconnect_attempts=cfg.reconnect_attempts,
        reconnect_delay=cfg.reconnect_delay_sec,
    )

    loop.start()
    supervisor.start()
    loop.post("refresh")

    print("Type 'help' to see commands. Type 'exit' to quit.")
    try:
        while True:
            try:
                line = input("> ")
            except EOFError:
                break
            if confirm.offer(line):
                continue
            if line.strip().lower() in ("exit", "quit"):
                break
            if line.strip().lower() == "list":
                for o in engine.snapshot().orders:
                    print(format_order(o, cfg.default_eta_minutes))
                continue
            if line.strip().lower().startswith("history"):
                print_history(history, line)
                continue
            err = handle_cmd(loop, line)
            if err:
                print(err)
    except KeyboardInterrupt:
        print()
    finally:
        supervisor.close()
        session.logout()
        loop.stop()
        loop.join(timeout=5.0)
        engine.close()
        log.info("=== RUN LIVE ORDERS STOP ===")


if __name__ == "__main__":
    main()
