"""
doccatalog CLI — database bootstrap and catalog inspection commands.

Commands:
- doccatalog init      — Create the catalog tables for the configured database
- doccatalog seed      — Load categories/tags/documents from a YAML file into the DB
- doccatalog browse    — Print one page of the catalog as a given role sees it
- doccatalog orphans   — List documents whose category key matches no category

Seed file layout (also accepted by ``--seed`` for an in-memory catalog):

    categories: [{id, nameKey, viewPermissions, iconName}]
    tags:       [{id, name, color}]
    documents:  [{id, categoryKey, tagIds, viewPermissions, title, ...}]
"""

from __future__ import annotations

import argparse
import logging
from typing import Dict, List, Optional

import yaml

from doccatalog.engine.errors import CatalogError

logger = logging.getLogger("doccatalog.cli")


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="doccatalog",
        description="doccatalog — role-aware document catalog",
    )
    parser.add_argument(
        "--config", default=None, help="Path to doccatalog.yaml (default: auto-discover)"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # doccatalog init
    subparsers.add_parser("init", help="Create catalog tables")

    # doccatalog seed
    seed_parser = subparsers.add_parser("seed", help="Load a YAML seed file into the database")
    seed_parser.add_argument("file", help="YAML file with categories/tags/documents")

    # doccatalog browse
    browse_parser = subparsers.add_parser("browse", help="Print one catalog page for a role")
    browse_parser.add_argument("--role", default="guest", help="Viewer role (default: guest)")
    browse_parser.add_argument("--params", default="", help="Shareable query string, e.g. 'q=plan&tag=t1&page=2'")
    browse_parser.add_argument("--sort", choices=["recent", "alpha"], help="Sort order (default: from config)")
    browse_parser.add_argument("--seed", help="Browse a YAML seed file instead of the database")
    browse_parser.add_argument("--translations", help="YAML mapping of title keys to display titles")

    # doccatalog orphans
    orphans_parser = subparsers.add_parser("orphans", help="List documents with an unknown category")
    orphans_parser.add_argument("--seed", help="Inspect a YAML seed file instead of the database")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        config = _load(args.config)
    except CatalogError as e:
        print(f"[ERROR] {e}")
        return 1

    try:
        if args.command == "init":
            return cmd_init(config)
        elif args.command == "seed":
            return cmd_seed(config, args)
        elif args.command == "browse":
            return cmd_browse(config, args)
        elif args.command == "orphans":
            return cmd_orphans(config, args)
        else:
            parser.print_help()
            return 0
    finally:
        _shutdown(config)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load(config_path: Optional[str]):
    from doccatalog.engine.config import load_config
    from doccatalog.engine.logging import init_logging, log, log_system_event

    config = load_config(config_path)
    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if config.logging.structured:
        queue_cfg = config.logging.async_queue
        init_logging(
            log_dir=config.logging.directory,
            flush_interval_ms=queue_cfg.flush_interval_ms,
            flush_batch_size=queue_cfg.flush_batch_size,
            max_queue_size=queue_cfg.max_queue_size,
        )
        log(log_system_event("cli_started", details={"environment": config.environment}))
    return config


def _shutdown(config) -> None:
    from doccatalog.db.session import close_catalog_db
    from doccatalog.engine.logging import shutdown_logging

    close_catalog_db()
    shutdown_logging()


def _open_store(config, seed_file: Optional[str] = None):
    """In-memory store for a seed file, else the configured SQL database."""
    if seed_file:
        from doccatalog.store.memory import MemoryCatalogStore

        return MemoryCatalogStore.from_yaml(seed_file)

    from doccatalog.db.session import init_catalog_db
    from doccatalog.store.sql import SqlCatalogStore

    return SqlCatalogStore(init_catalog_db(config.database))


def _read_yaml(path: str) -> Dict:
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path} must contain a mapping")
    return raw


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_init(config) -> int:
    """Create every catalog table on the configured database."""
    from sqlalchemy.exc import SQLAlchemyError

    from doccatalog.db.base import engine_registry
    from doccatalog.db.session import CATALOG_ENGINE, init_catalog_db

    try:
        init_catalog_db(config.database, create_tables=True)
    except SQLAlchemyError as e:
        print(f"[ERROR] Failed to create tables: {e}")
        return 1

    if not engine_registry.health_check(CATALOG_ENGINE):
        print(f"[ERROR] Database not reachable: {config.database.url}")
        return 1
    print(f"[OK] Catalog tables ready on {config.database.url}")
    return 0


def cmd_seed(config, args: argparse.Namespace) -> int:
    """Upsert a YAML seed file into the configured database."""
    from sqlalchemy.exc import SQLAlchemyError

    from doccatalog.db.session import init_catalog_db
    from doccatalog.store.sql import SqlCatalogStore

    try:
        raw = _read_yaml(args.file)
    except (OSError, yaml.YAMLError, ValueError) as e:
        print(f"[ERROR] Cannot read {args.file}: {e}")
        return 1

    try:
        store = SqlCatalogStore(init_catalog_db(config.database, create_tables=True))
        counts = store.import_records(
            categories=raw.get("categories") or [],
            tags=raw.get("tags") or [],
            documents=raw.get("documents") or [],
        )
    except (SQLAlchemyError, KeyError) as e:
        print(f"[ERROR] Seed failed: {e}")
        return 1

    for kind, count in counts.items():
        print(f"[OK] {kind}: {count}")
    return 0


def _format_row(doc, translate, tag_names: Dict[str, str]) -> str:
    updated = doc.updated_at.date().isoformat() if doc.updated_at else "-"
    tags = ", ".join(tag_names.get(t, t) for t in doc.tag_ids)
    line = f"  {doc.display_title(translate) or doc.id}  [{doc.category_key or '-'}]  {updated}"
    return f"{line}  ({tags})" if tags else line


def cmd_browse(config, args: argparse.Namespace) -> int:
    """Open a controller, print the current page, close it."""
    from doccatalog.catalog.controller import CatalogStateController

    translate = None
    if args.translations:
        try:
            table = {str(k): str(v) for k, v in _read_yaml(args.translations).items()}
        except (OSError, yaml.YAMLError, ValueError) as e:
            print(f"[ERROR] Cannot read {args.translations}: {e}")
            return 1
        translate = lambda key: table.get(key, key)  # noqa: E731

    try:
        store = _open_store(config, args.seed)
    except (OSError, yaml.YAMLError) as e:
        print(f"[ERROR] Cannot open catalog: {e}")
        return 1

    controller = CatalogStateController(
        store,
        role=args.role,
        params=args.params,
        translate=translate,
        config=config,
        sort_by=args.sort,
    )
    with controller:
        view = controller.view

    if view.error is not None:
        print(f"[ERROR] {view.error}")
        return 1

    tag_names = {t.id: t.name for t in view.tags}
    print(f"Role: {controller.role.value}  Sort: {view.sort_by.value}  Params: {view.params.to_query_string() or '-'}")
    print(f"Categories: {', '.join(c.name_key for c in view.categories) or '-'}")
    if view.is_empty:
        print("No documents.")
        return 0
    print(f"Page {view.page}/{view.total_pages} ({view.total_count} documents)")
    for doc in view.documents:
        print(_format_row(doc, translate, tag_names))
    return 0


def cmd_orphans(config, args: argparse.Namespace) -> int:
    """List documents whose category is unknown (visible to admin only)."""
    from doccatalog.documents.models import SortBy
    from doccatalog.engine.subscriptions import LiveCollectionSubscriber
    from doccatalog.security.permissions import orphan_documents
    from doccatalog.store.base import COLLECTION_CATEGORIES, COLLECTION_DOCUMENTS, DocumentQuery

    try:
        store = _open_store(config, args.seed)
    except (OSError, yaml.YAMLError) as e:
        print(f"[ERROR] Cannot open catalog: {e}")
        return 1

    received: Dict[str, tuple] = {}
    errors: List[CatalogError] = []
    subscriber = LiveCollectionSubscriber(store)
    query = DocumentQuery(sort_by=SortBy.RECENT, limit=config.catalog.fetch_limit)
    with subscriber.subscribe(
        COLLECTION_CATEGORIES, lambda s: received.__setitem__(COLLECTION_CATEGORIES, s), errors.append
    ), subscriber.subscribe(
        COLLECTION_DOCUMENTS, lambda s: received.__setitem__(COLLECTION_DOCUMENTS, s), errors.append, query=query
    ):
        pass

    if errors:
        print(f"[ERROR] {errors[0]}")
        return 1

    orphans = orphan_documents(received.get(COLLECTION_DOCUMENTS, ()), received.get(COLLECTION_CATEGORIES, ()))
    if not orphans:
        print("[OK] No orphan documents")
        return 0
    for doc in orphans:
        print(f"  {doc.id}  categoryKey={doc.category_key!r}")
    print(f"[WARN] {len(orphans)} orphan document(s)")
    return 0
