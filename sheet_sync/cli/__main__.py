from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv
from psycopg2.extras import RealDictCursor

from ..config.loader import ConfigError, load_config
from ..db.record_store import InMemoryRecordStore, PgRecordStore
from ..excel.reader import MissingColumnsError, SheetHeaderError, SourceReadError, read_sheet_rows
from ..logging.error_log import ErrorLogBuffer
from ..logging.init import log_summary, setup_logging
from ..models.config_models import SyncConfig
from ..services.orchestrator import sync_rows
from ..services.summary import render_summary_line

"""CLI entrypoint.

python -m sheet_sync.cli [--config PATH] --source PATH [--sheet NAME]
                         [--header-row N] [--dry-run] [--debug] [--inspect-data]

Flow: .env -> config -> read export -> connect (or mock) -> sync_rows ->
error log flush -> SUMMARY line -> exit code.
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

DEFAULT_CONFIG_PATH = Path("config/sync.yml")
INSPECT_SAMPLE_ROWS = 3


@contextmanager
def _db_connection(cfg: SyncConfig) -> Iterator[Any]:  # pragma: no cover (thin wrapper)
    """psycopg2 connection + RealDictCursor.

    接続情報の解決優先順位:
        1. `.env` で読み込まれた環境変数 (main() 冒頭で上書きロード済み)
           - DATABASE_URL / PGDSN があれば DSN 全体をそのまま使用
           - 個別 PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
        2. config/sync.yml の database セクション (不足分のフォールバック)
    """
    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if not dsn:
        host = os.getenv("PGHOST", db_cfg.host or "localhost")
        port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
        user = os.getenv("PGUSER", db_cfg.user or "postgres")
        password = os.getenv("PGPASSWORD", db_cfg.password or "")
        database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
        dsn = f"host={host} port={port} user={user} dbname={database}"
        if password:
            dsn += f" password={password}"

    conn = psycopg2.connect(dsn)
    # 行単位の BEGIN/COMMIT は PgRecordStore が発行する
    conn.autocommit = True
    cur = conn.cursor(cursor_factory=RealDictCursor)
    try:
        yield cur
    finally:
        cur.close()
        conn.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; .env values win over the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Seller sheet -> PostgreSQL sync")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Config YAML path")
    p.add_argument("--source", type=Path, required=True, help="Exported sheet (.xlsx or .csv)")
    p.add_argument("--sheet", default=None, help="Sheet name (default: first sheet)")
    p.add_argument("--header-row", type=int, default=1, help="1-based header row (default: 1)")
    p.add_argument("--dry-run", action="store_true", help="Compute decisions without writing")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print header labels & first rows then exit")
    return p.parse_args(argv)


def _inspect_data(columns: list[str], rows: list[Any]) -> int:
    # 改行入りヘッダを判別できるよう repr で出力
    print(f"columns ({len(columns)}):")
    for i, label in enumerate(columns, start=1):
        print(f"  {i:>3}: {label!r}")
    for r in rows[:INSPECT_SAMPLE_ROWS]:
        print(f"row {r.row_number}: {r.to_dict()!r}")
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    # None のときのみ sys.argv を読む (テストで main([]) を渡すため)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    logger = setup_logging(debug=args.debug)
    if args.debug:
        logger.debug("debug mode enabled")

    _load_env_file(Path(".env"), override=True)

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    try:
        data = read_sheet_rows(
            args.source,
            sheet=args.sheet,
            header_row=args.header_row,
            expected_columns={cfg.natural_key.column},
        )
    except (SourceReadError, SheetHeaderError, MissingColumnsError) as e:
        logger.error(f"source: {e}")
        return EXIT_FATAL

    if args.inspect_data:
        return _inspect_data(data.columns, data.rows)

    logger.info(f"Syncing {len(data.rows)} rows from {args.source.name} (sheet={data.sheet_name})")
    error_log = ErrorLogBuffer()

    def run(store: Any) -> Any:
        return sync_rows(
            data.rows,
            store,
            cfg,
            dry_run=args.dry_run,
            sheet=data.sheet_name,
            error_log=error_log,
        )

    # DB 接続を完全に無効化したい場合 (テスト等) DISABLE_DB_CONNECT=1
    disable_db = os.getenv("DISABLE_DB_CONNECT") == "1"
    db_mode = "mock"
    if disable_db:
        logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> mock mode")
        summary = run(InMemoryRecordStore(cfg))
    else:
        try:
            with _db_connection(cfg) as cur:
                db_mode = "live"
                summary = run(PgRecordStore(cur, cfg))
        except psycopg2.OperationalError as db_e:
            logger.info(f"DB connection failed -> fallback to mock mode: {str(db_e).strip()}")
            db_mode = "mock"
            summary = run(InMemoryRecordStore(cfg))

    try:
        path = error_log.flush()
        if path is not None:
            logger.info(f"error log: {path}")
    except OSError as e:
        logger.warning(f"failed to write error log: {e}")

    logger.info(f"mode={db_mode} dry_run={args.dry_run} rows={summary.total_rows}")
    # log_summary が "SUMMARY " を付与するため接頭辞を除く
    log_summary(render_summary_line(summary)[len("SUMMARY "):])

    if summary.has_errors:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
