"""
Ubazol state core - command line entrypoint

USAGE:
    python main.py demo --config config
    python main.py demo --backend memory
    python main.py cart --config config
    python main.py orders --config config --active
    python main.py track 1760869845123 --config config
    python main.py notifications --config config
"""

from __future__ import annotations

import argparse
import json
import sys
from decimal import Decimal
from pathlib import Path
from typing import Any, List, Optional

from ubazol.config import load_config
from ubazol.logging import setup_logging
from ubazol.runtime.app import DeliveryApp
from ubazol.state import Product
from ubazol.time import SimulatedClock, get_clock


# ============================================================================
# DEMO DATA
# ============================================================================

DEMO_PRODUCTS = [
    Product("p1", "Margherita Pizza", Decimal("15.99"), "v1", "Pizza Palace"),
    Product("p2", "Garlic Bread", Decimal("5.99"), "v1", "Pizza Palace"),
]
OTHER_VENDOR_PRODUCT = Product("b1", "Classic Burger", Decimal("12.99"), "v2", "Burger Barn")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Ubazol - delivery client state core",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    subparsers = parser.add_subparsers(dest='command', help='Command')
    subparsers.required = True

    def add_common(sub):
        sub.add_argument(
            '--config',
            type=str,
            default=None,
            help='Directory holding config.yaml (default: built-in defaults)'
        )
        sub.add_argument(
            '--backend',
            choices=['memory', 'sqlite'],
            default=None,
            help='Override storage backend'
        )
        sub.add_argument(
            '--db',
            type=str,
            default=None,
            help='Override SQLite database path'
        )
        sub.add_argument(
            '--quiet',
            action='store_true',
            help='Only log warnings and errors to the console'
        )

    demo_parser = subparsers.add_parser('demo', help='Run a scripted cart/order walkthrough')
    add_common(demo_parser)

    cart_parser = subparsers.add_parser('cart', help='Print the persisted cart')
    add_common(cart_parser)

    orders_parser = subparsers.add_parser('orders', help='Print persisted orders')
    add_common(orders_parser)
    orders_parser.add_argument(
        '--active',
        action='store_true',
        help='Only orders that are not delivered or cancelled'
    )

    track_parser = subparsers.add_parser('track', help='Print tracking steps for an order')
    add_common(track_parser)
    track_parser.add_argument('order_id', type=str, help='Order id')

    notifications_parser = subparsers.add_parser('notifications', help='Print the notification log')
    add_common(notifications_parser)

    return parser


def _load(args):
    config = load_config(Path(args.config) if args.config else None)
    if args.backend:
        config.storage.backend = args.backend
    if args.db:
        config.storage.path = Path(args.db)

    setup_logging(
        log_dir=config.logging.log_dir,
        log_level=config.logging.log_level.value,
        console_level="WARNING" if args.quiet else config.logging.console_level.value,
        json_logs=config.logging.json_logs,
        max_bytes=config.logging.max_bytes,
        backup_count=config.logging.backup_count,
        console_colors=config.logging.console_colors
    )
    return config


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, default=str))


# ============================================================================
# COMMANDS
# ============================================================================

def run_demo(app: DeliveryApp, clock: SimulatedClock) -> int:
    print("Saving addresses...")
    app.add_saved_address({"label": "Home", "address": "12 Elm Street", "city": "New York", "zipCode": "10001"})
    work = app.add_saved_address({"label": "Work", "address": "500 Market Ave", "city": "New York", "zipCode": "10013"}).value
    app.set_default_address(work.id)
    print(f"  Delivery address: {app.location.delivery_address_text}")

    print("Filling cart...")
    for product in DEMO_PRODUCTS:
        app.add_to_cart(product)
    app.update_fees(delivery_fee=Decimal("2.99"), service_fee=Decimal("1.50"), tax=Decimal("1.50"))
    print(f"  Items: {app.cart.get_item_count()}  Total: ${app.cart.get_total()}")

    conflict = app.add_to_cart(OTHER_VENDOR_PRODUCT)
    print(f"  Adding from another vendor: {conflict.error}")

    print("Placing order...")
    placed = app.place_order({"type": "card", "last4": "4242"})
    if not placed.success:
        print(f"ERROR: {placed.error}")
        return 1
    order = placed.value
    print(f"  Order {order.id}: {order.status.value}, total ${order.total}")

    for _ in range(2):
        clock.advance(seconds=5)
        app.tick()
        print(f"  +5s -> {app.orders.get_order(order.id).status.value}")

    app.update_order_status(order.id, "out_for_delivery")
    refused = app.cancel_order(order.id)
    print(f"  Cancel while out for delivery: {refused.error}")
    app.update_order_status(order.id, "delivered")

    tracking = app.track_order(order.id).value
    for step in tracking.steps:
        print(f"    [{'x' if step.completed else ' '}] {step.title}")

    again = app.reorder(order.id).value
    app.cancel_order(again.id)
    print(f"  Re-order {again.id}: {app.orders.get_order(again.id).status.value}")

    print(f"Unread notifications: {app.notifications.get_unread_count()}")
    for note in app.notifications.notifications:
        print(f"  - {note.title}: {note.message}")

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entrypoint."""
    args = build_parser().parse_args(argv)

    try:
        config = _load(args)
    except ValueError as e:
        print(f"ERROR: {e}")
        return 1

    if args.command == 'demo':
        clock = get_clock("simulated")
        with DeliveryApp(config, clock=clock) as app:
            return run_demo(app, clock)

    # Read-only views; nothing is scheduled
    config.scheduler.enabled = False
    with DeliveryApp(config, synchronous=True) as app:
        if args.command == 'cart':
            _print_json(app.cart.snapshot().to_dict())
        elif args.command == 'orders':
            orders = app.orders.get_active_orders() if args.active else app.orders.get_order_history()
            _print_json([o.to_dict() for o in orders])
        elif args.command == 'track':
            result = app.track_order(args.order_id)
            if not result.success:
                print(f"ERROR: {result.error}")
                return 1
            _print_json(result.value.to_dict())
        elif args.command == 'notifications':
            _print_json([n.to_dict() for n in app.notifications.notifications])

    return 0


if __name__ == '__main__':
    sys.exit(main())
