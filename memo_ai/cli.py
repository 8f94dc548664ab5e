"""
Memo AI — CLI entry point
Usage:
  memo-ai [--host HOST] [--port PORT] [--reload] [--log-level LEVEL]
  memo-ai repair [--limit N]
  memo-ai reindex
"""

import argparse
import logging
import sys

from . import config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper()), format=LOG_FORMAT)


def _serve(args: argparse.Namespace) -> None:
    try:
        import uvicorn
    except ImportError:
        print("Error: uvicorn not found. Run: pip install memo-ai", file=sys.stderr)
        sys.exit(1)

    uvicorn.run(
        "memo_ai.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level,
    )


def _repair(args: argparse.Namespace) -> None:
    from .database import init_db
    from .service import get_service

    init_db()
    service = get_service()
    try:
        result = service.repair(limit=args.limit)
    finally:
        service.close()
    print(f"Scanned {result['scanned']} notes: {result['repaired']} repaired, {result['failed']} failed")
    if result["failed"]:
        sys.exit(1)


def _reindex(args: argparse.Namespace) -> None:
    from . import vector_index
    from .database import get_connection, init_db

    init_db(vector_index=False)
    with get_connection() as conn:
        if not vector_index.load_extension(conn):
            print("Error: sqlite-vec is not available, cannot build the vector index", file=sys.stderr)
            sys.exit(1)
        count = vector_index.rebuild(conn, config.EMBED_DIMENSIONS)
    print(f"Indexed {count} note embeddings into {config.VECTOR_INDEX_TABLE}")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="memo-ai",
        description="Memo AI server — start the API or run maintenance tasks.",
    )
    parser.add_argument("--host", default=config.HOST, help=f"Bind host (default: {config.HOST})")
    parser.add_argument("--port", type=int, default=config.PORT, help=f"Bind port (default: {config.PORT})")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload (dev mode)")
    parser.add_argument("--log-level", default="warning", choices=["debug", "info", "warning", "error"])

    sub = parser.add_subparsers(dest="command")
    repair = sub.add_parser("repair", help="Regenerate missing or malformed note embeddings")
    repair.add_argument(
        "--limit",
        type=int,
        default=config.REPAIR_BATCH_LIMIT,
        help=f"Max notes per run (default: {config.REPAIR_BATCH_LIMIT})",
    )
    sub.add_parser("reindex", help="Rebuild the sqlite-vec index from stored embeddings")

    args = parser.parse_args()
    _configure_logging(args.log_level)

    if args.command == "repair":
        _repair(args)
    elif args.command == "reindex":
        _reindex(args)
    else:
        _serve(args)


if __name__ == "__main__":
    main()
