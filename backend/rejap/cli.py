"""Maintenance commands: seed the curriculum, clear quiz data, check configuration."""
from __future__ import annotations

import argparse
import logging
import sys
from typing import Callable, List, Optional, Sequence

from .cleanup import clear_quiz_data
from .db import Base, SessionLocal, engine, ensure_schema
from .seed import seed_curriculum
from .settings import Settings, settings


def _mask(name: str, value: str) -> str:
    if "KEY" in name or "SECRET" in name:
        return value[:6] + "..."
    if name == "DATABASE_URL":
        return value.split(":", 1)[0]
    return value


def check_env(config: Settings, out: Callable[[str], None] = print) -> int:
    required = [("GEMINI_API_KEY", config.gemini_api_key), ("JWT_SECRET_KEY", config.jwt_secret_key)]
    optional = [
        ("DATABASE_URL", config.database_url),
        ("OPENROUTER_API_KEY", config.openrouter_api_key),
        ("FRONTEND_URL", config.frontend_url),
    ]
    ok = True
    out("Required variables:")
    for name, value in required:
        if value:
            out(f"  + {name}: {_mask(name, value)}")
        else:
            out(f"  - {name}: MISSING")
            ok = False
    if config.jwt_secret_key == "change-me":
        out("  ! JWT_SECRET_KEY still has the development default")
    out("Optional variables:")
    for name, value in optional:
        out(f"  {'+' if value else '.'} {name}: {_mask(name, value) if value else 'not set'}")
    return 0 if ok else 1


def _prepare_db() -> None:
    Base.metadata.create_all(bind=engine)
    ensure_schema()


def _cmd_seed(args: argparse.Namespace) -> int:
    _prepare_db()
    with SessionLocal() as db:
        counts = seed_curriculum(db)
    print(f"Seeded {counts['levels']} levels, {counts['modules']} modules, {counts['content_items']} content items")
    return 0


def _cmd_clear_quiz_data(args: argparse.Namespace) -> int:
    if not args.yes:
        print("Refusing to delete quiz data without --yes", file=sys.stderr)
        return 2
    _prepare_db()
    with SessionLocal() as db:
        removed = clear_quiz_data(db)
        if args.reseed:
            seed_curriculum(db)
    for label, count in removed.items():
        print(f"Deleted {count} {label}")
    return 0


def _cmd_check_env(args: argparse.Namespace) -> int:
    return check_env(settings)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rejap-admin", description=__doc__)
    parser.add_argument("--log-level", default=settings.log_level, help="Logging level (default: %(default)s)")
    sub = parser.add_subparsers(dest="command", required=True)

    seed = sub.add_parser("seed", help="Create or update levels, modules, content and quiz placeholders")
    seed.set_defaults(func=_cmd_seed)

    clear = sub.add_parser("clear-quiz-data", help="Delete quizzes, questions, attempts, answers and feedback")
    clear.add_argument("--yes", action="store_true", help="Confirm the deletion")
    clear.add_argument("--reseed", action="store_true", help="Recreate empty quiz placeholders afterwards")
    clear.set_defaults(func=_cmd_clear_quiz_data)

    env = sub.add_parser("check-env", help="Report which settings are configured")
    env.set_defaults(func=_cmd_check_env)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
