"""Operator CLI for user lifecycle operations with remote mirroring.

This module serves as a CLI wrapper around app.core.user_service.
"""
from __future__ import annotations
import argparse
import sys
from pathlib import Path

SCRIPT_DIR = Path(__file__).parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.config import load_settings
from app.core.areas import AreaScope, PeerScope
from app.core.errors import ServiceError
from app.core.models import UserDraft
from app.core.remote import RemoteError
from app.core.user_query import PageRequest, ScopedCriteria
from scripts import audit


def _build_service():
    from app.bootstrap import configure_logging, create_user_service

    cfg = load_settings()
    configure_logging(cfg)
    return create_user_service(cfg)


def _parse_area(value: str) -> AreaScope:
    try:
        units = [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"area must be comma-separated integers, got {value!r}")
    try:
        return AreaScope.from_units(units)
    except ServiceError as e:
        raise argparse.ArgumentTypeError(str(e))


def _add_scope_args(sp: argparse.ArgumentParser) -> None:
    scope = sp.add_mutually_exclusive_group(required=True)
    scope.add_argument("--area", type=_parse_area, help="province[,city[,county]]")
    scope.add_argument("--peer", type=int, help="Use the area assignments of this user id")
    sp.add_argument("--min-level", type=int, default=0, help="Role level floor")
    sp.add_argument("--blurry", default=None, help="Substring of username, nickname or phone")
    status = sp.add_mutually_exclusive_group()
    status.add_argument("--enabled-only", dest="enabled", action="store_const", const=True)
    status.add_argument("--disabled-only", dest="enabled", action="store_const", const=False)


def _criteria(args) -> ScopedCriteria:
    scope = args.area if args.area is not None else PeerScope(args.peer)
    return ScopedCriteria(scope=scope, min_role_level=args.min_level, blurry=args.blurry, enabled=args.enabled)


def _fail(
    cmd: str,
    error: Exception,
    username: str,
    operator: str,
    event_type: str | None = None,
    user_ids: tuple[int, ...] = (),
) -> None:
    print(f"[{cmd}] Error: {error}", file=sys.stderr)
    if event_type:
        audit.safe_log_user_event(
            event_type,
            username,
            operator=operator,
            details={"error": str(error)},
            success=False,
            user_ids=user_ids,
            remote=audit.REMOTE_FAILED if isinstance(error, RemoteError) else None,
        )
    sys.exit(1)


def main(argv: list[str] | None = None) -> None:
    """Command-line entry point."""
    parser = argparse.ArgumentParser(description="User sync helper")
    parser.add_argument("--operator", type=int, default=None,
                        help="Operator user id forwarded to the remote system and audit log")

    sub = parser.add_subparsers(dest="cmd")

    sc = sub.add_parser("create")
    sc.add_argument("--username", required=True)
    sc.add_argument("--phone", required=True)
    sc.add_argument("--nick-name", default=None)
    sc.add_argument("--email", default=None)
    sc.add_argument("--gender", default=None)
    sc.add_argument("--role", type=int, action="append", required=True,
                    help="Role id (repeatable, first is primary)")
    sc.add_argument("--job", type=int, action="append", default=[])
    sc.add_argument("--dept", type=int, default=None)
    sc.add_argument("--area", type=_parse_area, action="append", default=[],
                    help="province[,city[,county]] (repeatable)")
    sc.add_argument("--disabled", action="store_true")

    for name in ("disable", "enable"):
        sp = sub.add_parser(name)
        sp.add_argument("--id", type=int, required=True)

    sd = sub.add_parser("delete")
    sd.add_argument("--id", type=int, nargs="+", required=True)

    sl = sub.add_parser("list-area")
    _add_scope_args(sl)
    sl.add_argument("--page", type=int, default=0)
    sl.add_argument("--size", type=int, default=10)

    sn = sub.add_parser("count-area")
    _add_scope_args(sn)

    sub.add_parser("verify-audit")

    args = parser.parse_args(argv)

    if not args.cmd:
        parser.print_help()
        return

    if args.cmd == "verify-audit":
        report = audit.verify_report()
        for event_type, (count, valid) in sorted(report.by_type.items()):
            print(f"  {event_type}: {valid}/{count}")
        print(f"Audit log: {report.valid}/{report.total} events with valid signatures")
        if not report.ok:
            sys.exit(1)
        return

    operator = str(args.operator) if args.operator is not None else "cli"
    service = _build_service()

    if args.cmd == "create":
        draft = UserDraft(
            username=args.username,
            phone=args.phone,
            nick_name=args.nick_name or args.username,
            email=args.email,
            gender=args.gender,
            enabled=not args.disabled,
            dept_id=args.dept,
            role_ids=tuple(args.role),
            job_ids=tuple(args.job),
            areas=tuple(args.area),
        )
        try:
            user = service.create(draft, operator_id=args.operator)
        except (ServiceError, RemoteError) as e:
            _fail("create", e, args.username, operator, "user_create")
        print(f"Created user {user.username} (id={user.id}, mirrored={user.mirrored})")
    elif args.cmd in ("disable", "enable"):
        enabled = args.cmd == "enable"
        try:
            user = service.find_by_id(args.id)
            service.update(UserDraft.from_user(user).with_changes(enabled=enabled), operator_id=args.operator)
        except (ServiceError, RemoteError) as e:
            _fail(args.cmd, e, str(args.id), operator, f"user_{args.cmd}", (args.id,))
        print(f"User {args.id} {'enabled' if enabled else 'disabled'}")
    elif args.cmd == "delete":
        try:
            removed = service.delete(args.id, operator_id=args.operator)
        except (ServiceError, RemoteError) as e:
            _fail("delete", e, ",".join(str(i) for i in args.id), operator, "user_delete", tuple(args.id))
        print(f"Deleted {removed} user(s)")
    elif args.cmd == "list-area":
        try:
            users = service.list_in_area(_criteria(args), PageRequest.of(args.page, args.size))
        except ServiceError as e:
            _fail("list-area", e, "", operator)
        for user in users:
            status = "enabled" if user.enabled else "disabled"
            print(f"{user.id}\t{user.username}\t{user.nick_name or ''}\t{user.phone or ''}\t{status}")
    elif args.cmd == "count-area":
        try:
            print(service.count_in_area(_criteria(args)))
        except ServiceError as e:
            _fail("count-area", e, "", operator)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
