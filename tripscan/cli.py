#!/usr/bin/env python3
"""
CLI entry point for the tripscan toolkit.

Defines the following commands:
  tripscan ingest [--data-dir DIR] [--logdir DIR] [--db PATH]
  tripscan export [--db PATH] [--out FILE]
  tripscan serve [--db PATH] [--logdir DIR] [--rootdir DIR] [--port 8800]
  tripscan version
"""

import sys
import os
from argparse import ArgumentParser, Namespace
from importlib.metadata import PackageNotFoundError, version as _get_version

import uvicorn

from tripscan.utils.log import get_logger, set_level
from tripscan.storage.db import SessionDatabase
from tripscan.server import create_app
from tripscan.analysis.features import map_features, render_openlayers

logger = get_logger(__name__)

DEFAULT_DATA_DIR = "/media/sdcard"
DEFAULT_DB = "tripscan.json"


def _logdir(data_dir: str, logdir: str | None) -> str:
    return logdir or os.path.join(data_dir, "log")


def _open_db(db_path: str) -> SessionDatabase:
    if os.path.exists(db_path):
        return SessionDatabase.load(db_path)
    return SessionDatabase()


def ingest(logdir: str, db_path: str) -> None:
    """
    Correlate every trip under `logdir` and save the result.

    Parameters
    ----------
    logdir
        Directory holding one sub-directory per trip.
    db_path
        Session database file; created if missing. Ingesting into a
        database that already holds trips is refused.
    """
    logger.info("Ingest: logdir=%s, db=%s", logdir, db_path)
    db = _open_db(db_path)
    db.add_trips(logdir)
    db.save(db_path)


def export(db_path: str, out: str | None) -> None:
    """
    Write the OpenLayers feature script for a session database.

    Parameters
    ----------
    db_path
        Session database file.
    out
        Output file; stdout when omitted.
    """
    logger.info("Export: db=%s, out=%s", db_path, out or "-")
    db = SessionDatabase.load(db_path)
    script = render_openlayers(map_features(db.time_map))
    if out is None:
        sys.stdout.write(script)
        return
    with open(out, "w", encoding="utf-8") as f:
        f.write(script)


def serve(db_path: str, logdir: str, rootdir: str | None, port: int) -> None:
    """
    Spin up FastAPI+Uvicorn to serve the map.

    Parameters
    ----------
    db_path
        Session database file; when missing, `logdir` is ingested in memory.
    logdir
        Trip directory root used when there is no database yet.
    rootdir
        Directory of static web resources.
    port
        Port on which to serve HTTP.
    """
    logger.info("Serve: db=%s, port=%d", db_path, port)
    db = _open_db(db_path)
    if not db.trips:
        db.add_trips(logdir)
    app = create_app(db, rootdir)
    uvicorn.run(app, host="127.0.0.1", port=port)


def version() -> None:
    """
    Print the installed tripscan package version.
    """
    try:
        ver = _get_version("tripscan")
    except PackageNotFoundError:
        ver = "unknown"
    logger.info("tripscan version %s", ver)


def parse_args(argv: list[str] | None = None) -> Namespace:
    """
    Parse command-line arguments and return the populated namespace.
    """
    parser = ArgumentParser(prog="tripscan")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # tripscan ingest
    p = subparsers.add_parser("ingest", help="Correlate trip logs into a session database.")
    p.add_argument("--data-dir", type=str, default=DEFAULT_DATA_DIR, help="Recorder data directory.")
    p.add_argument("--logdir", type=str, help="Trip log directory (default: DATA_DIR/log).")
    p.add_argument("--db", type=str, default=DEFAULT_DB, help="Session database file.")

    # tripscan export
    p = subparsers.add_parser("export", help="Export map features as an OpenLayers script.")
    p.add_argument("--db", type=str, default=DEFAULT_DB, help="Session database file.")
    p.add_argument("--out", type=str, help="Output file (default: stdout).")

    # tripscan serve
    p = subparsers.add_parser("serve", help="Serve via FastAPI + Uvicorn.")
    p.add_argument("--db", type=str, default=DEFAULT_DB, help="Session database file.")
    p.add_argument("--data-dir", type=str, default=DEFAULT_DATA_DIR, help="Recorder data directory.")
    p.add_argument("--logdir", type=str, help="Trip log directory, used when there is no database.")
    p.add_argument("--rootdir", type=str, help="Directory for static HTTP resources.")
    p.add_argument(
        "--port", type=int, default=8800, help="Port number to serve on."
    )

    # tripscan version
    subparsers.add_parser("version", help="Show tripscan version and exit.")

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """
    Entry point: dispatch to the selected subcommand.
    """
    args = parse_args(argv)
    if args.verbose:
        set_level("DEBUG")
    match args.command:
        case "ingest":
            ingest(_logdir(args.data_dir, args.logdir), args.db)
        case "export":
            export(args.db, args.out)
        case "serve":
            serve(args.db, _logdir(args.data_dir, args.logdir), args.rootdir, args.port)
        case "version":
            version()
        case _:
            sys.exit(1)


if __name__ == "__main__":
    main()
