#!/usr/bin/env python3
"""
PermGuard CLI

Command-line interface for the PermGuard daemon.
"""

import argparse
import json
import os
import sys
from typing import Optional

import httpx

GUARD_URL = os.getenv("PERMGUARD_URL", "http://127.0.0.1:8775")


def get_client(args) -> httpx.Client:
    """Get HTTP client."""
    headers = {}
    token = getattr(args, "token", None) or os.getenv("PERMGUARD_AUTH_TOKEN")
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return httpx.Client(base_url=getattr(args, "url", None) or GUARD_URL, headers=headers, timeout=10)


def _fail(response: httpx.Response) -> None:
    try:
        detail = response.json().get("detail", response.text)
    except ValueError:
        detail = response.text
    if isinstance(detail, dict):
        detail = f"{detail.get('error')}: {detail.get('message')}"
    print(f"❌ Error ({response.status_code}): {detail}")
    sys.exit(1)


def _post(args, path: str, payload: dict) -> dict:
    with get_client(args) as client:
        response = client.post(path, json=payload)
    if response.status_code != 200:
        _fail(response)
    return response.json()


def _sender(args) -> str:
    sender = args.sender or os.getenv("PERMGUARD_OWNER")
    if not sender:
        print("❌ --sender (or PERMGUARD_OWNER) is required for configuration commands")
        sys.exit(1)
    return sender


def cmd_status(args):
    """Show daemon status."""
    try:
        with get_client(args) as client:
            health = client.get("/health").json()
    except httpx.ConnectError:
        print("❌ PermGuard daemon not running")
        print("Start with: permguard serve")
        sys.exit(1)

    stats = health["stats"]
    checks = stats["checks"]
    print("🛡️  PermGuard Status")
    print("=" * 40)
    print(f"Status: {health['status']}")
    print(f"Version: {health['version']}")
    print(f"Owner: {health['owner']}")
    print()
    print(f"Members: {stats['members']} ({stats['role_assignments']} role assignments)")
    print(f"Deprecated roles: {stats['deprecated_roles']}")
    print(f"Target records: {stats['target_records']}")
    print(f"Function records: {stats['function_records']}")
    print()
    print(
        f"Checks: {checks['fulfilled']} fulfilled, {checks['rejected']} rejected, "
        f"{checks['errored']} errored"
    )


def cmd_check(args):
    """Check one transaction."""
    payload = {
        "caller": args.caller,
        "target": args.target,
        "value": args.value,
        "data": args.data,
        "operation": args.operation,
    }
    path = "/api/v1/permissions/check"
    if args.role:
        payload["role"] = args.role
        path += "/role"

    result = _post(args, path, payload)
    if result["allowed"]:
        print(f"✅ FULFILLED via role {result['role']}")
    else:
        print(f"🚫 {result['outcome']}: {result['reason']}")

    if args.verbose:
        for slot, (outcome, reason) in enumerate(
            zip(result["slot_outcomes"], result["reasons"])
        ):
            if outcome != "UNKNOWN":
                print(f"  slot {slot:2d}: {outcome} ({reason})")

    if not result["allowed"]:
        sys.exit(2)


def cmd_roles(args):
    """List the roles of a member."""
    with get_client(args) as client:
        response = client.get(f"/api/v1/permissions/members/{args.member}/roles")
    if response.status_code != 200:
        _fail(response)
    data = response.json()

    print(f"👤 {data['member']}")
    if not data["roles"]:
        print("   (no roles)")
    for slot, role in enumerate(data["slots"]):
        if role in data["roles"]:
            print(f"   slot {slot:2d}: {role}")


def cmd_assign(args):
    """Assign roles to a member."""
    _post(
        args,
        "/api/v1/permissions/roles/assign",
        {"sender": _sender(args), "member": args.member, "roles": args.roles},
    )
    print(f"✅ Assigned {len(args.roles)} role(s) to {args.member}")


def cmd_revoke(args):
    """Revoke a role from a member."""
    result = _post(
        args,
        "/api/v1/permissions/roles/revoke",
        {"sender": _sender(args), "member": args.member, "role": args.role},
    )
    if result["result"]:
        print(f"✅ Revoked {args.role} from {args.member}")
    else:
        print(f"ℹ️  {args.member} did not hold {args.role}")


def cmd_deprecate(args):
    """Deprecate a role id."""
    _post(
        args,
        "/api/v1/permissions/roles/deprecate",
        {"sender": _sender(args), "role": args.role},
    )
    print(f"✅ Role {args.role} deprecated")


def cmd_load_pack(args):
    """Apply a YAML policy pack."""
    with open(args.path) as f:
        content = f.read()
    result = _post(
        args,
        "/api/v1/permissions/packs/load",
        {"sender": _sender(args), "content": content},
    )
    summary = result["result"]
    print(f"✅ Applied pack {summary['name']} v{summary['version']}")
    print(
        f"   {summary['members']} member(s), {summary['targets']} target(s), "
        f"{summary['functions']} function(s), {summary['deprecated_roles']} deprecation(s)"
    )


def cmd_audit(args):
    """Show recent audit entries."""
    params = {"limit": args.limit}
    if args.event:
        params["event_type"] = args.event
    with get_client(args) as client:
        response = client.get("/api/v1/permissions/audit", params=params)
    if response.status_code != 200:
        _fail(response)
    data = response.json()

    verification = data.get("verification")
    if verification:
        mark = "✅" if verification["valid"] else "❌"
        print(f"{mark} {verification['message']}")
        print()

    for entry in data["entries"]:
        name = entry.get("event_type") or entry.get("name")
        args_ = entry.get("args", {})
        print(f"{entry['timestamp']}  {name}")
        if args.verbose:
            print(f"    {json.dumps(args_, sort_keys=True)}")


def cmd_serve(args):
    """Run the daemon in the foreground."""
    from .config.settings import get_settings
    from .main import main as run_daemon

    settings = get_settings()
    if args.host:
        settings.host = args.host
    if args.port:
        settings.port = args.port
    run_daemon(settings)


def main(argv: Optional[list] = None):
    parser = argparse.ArgumentParser(
        description="PermGuard CLI - transaction permission engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  permguard status                                  Show daemon status
  permguard check --caller 0x.. --target 0x.. --data 0xa9059cbb...
  permguard roles 0x5B38...                         List a member's roles
  permguard assign 0x5B38... operator auditor       Assign roles (by name or 0x id)
  permguard revoke 0x5B38... operator               Revoke a role
  permguard deprecate legacy-admin                  Deprecate a role id
  permguard load-pack treasury.yaml                 Apply a policy pack
  permguard audit --limit 20 -v                     Show recent audit entries
  permguard serve --port 8775                       Run the daemon
        """,
    )
    parser.add_argument("--url", help=f"Daemon URL (default {GUARD_URL})")
    parser.add_argument("--token", help="Bearer token for admin endpoints")
    parser.add_argument("--sender", help="Owner address for configuration commands")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    status_parser = subparsers.add_parser("status", help="Show daemon status")
    status_parser.set_defaults(func=cmd_status)

    check_parser = subparsers.add_parser("check", help="Check a transaction")
    check_parser.add_argument("--caller", required=True)
    check_parser.add_argument("--target", required=True)
    check_parser.add_argument("--value", type=int, default=0)
    check_parser.add_argument("--data", default="0x", help="Calldata as 0x hex")
    check_parser.add_argument(
        "--operation", choices=["call", "delegate_call"], default="call"
    )
    check_parser.add_argument("--role", help="Only use this role")
    check_parser.add_argument("-v", "--verbose", action="store_true")
    check_parser.set_defaults(func=cmd_check)

    roles_parser = subparsers.add_parser("roles", help="List a member's roles")
    roles_parser.add_argument("member")
    roles_parser.set_defaults(func=cmd_roles)

    assign_parser = subparsers.add_parser("assign", help="Assign roles to a member")
    assign_parser.add_argument("member")
    assign_parser.add_argument("roles", nargs="+")
    assign_parser.set_defaults(func=cmd_assign)

    revoke_parser = subparsers.add_parser("revoke", help="Revoke a role from a member")
    revoke_parser.add_argument("member")
    revoke_parser.add_argument("role")
    revoke_parser.set_defaults(func=cmd_revoke)

    deprecate_parser = subparsers.add_parser("deprecate", help="Deprecate a role")
    deprecate_parser.add_argument("role")
    deprecate_parser.set_defaults(func=cmd_deprecate)

    pack_parser = subparsers.add_parser("load-pack", help="Apply a YAML policy pack")
    pack_parser.add_argument("path")
    pack_parser.set_defaults(func=cmd_load_pack)

    audit_parser = subparsers.add_parser("audit", help="Show audit log")
    audit_parser.add_argument("--limit", type=int, default=10, help="Number of entries")
    audit_parser.add_argument("--event", help="Only this event type")
    audit_parser.add_argument("-v", "--verbose", action="store_true")
    audit_parser.set_defaults(func=cmd_audit)

    serve_parser = subparsers.add_parser("serve", help="Run the daemon")
    serve_parser.add_argument("--host")
    serve_parser.add_argument("--port", type=int)
    serve_parser.set_defaults(func=cmd_serve)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
