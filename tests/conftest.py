"""
doccatalog Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v
"""

from __future__ import annotations

from typing import Any, Dict, List

import pytest

from doccatalog.store.memory import MemoryCatalogStore


# ---------------------------------------------------------------------------
# Global singletons — never pick up a doccatalog.yaml from the CWD
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_config():
    """Reset global singletons between tests."""
    import doccatalog.engine.config as cfg_mod
    import doccatalog.engine.logging as log_mod

    cfg_mod._config = cfg_mod.CatalogConfig()
    yield
    cfg_mod._config = None
    log_mod.shutdown_logging()


# ---------------------------------------------------------------------------
# Catalog data
# ---------------------------------------------------------------------------

@pytest.fixture
def seed_records() -> Dict[str, List[Dict[str, Any]]]:
    """
    Small catalog:
      categories.armoplit — foreman, engineer
      categories.safety   — every business role
      categories.hr       — hr only
    plus one orphan document (categories.fixit).
    """
    return {
        "categories": [
            {"id": "c1", "nameKey": "categories.armoplit", "viewPermissions": ["foreman", "engineer"]},
            {"id": "c2", "nameKey": "categories.safety",
             "viewPermissions": ["foreman", "engineer", "architect", "worker"]},
            {"id": "c3", "nameKey": "categories.hr", "viewPermissions": ["hr"]},
        ],
        "tags": [
            {"id": "t1", "name": "Concrete", "color": "#999"},
            {"id": "t2", "name": "Winter"},
            {"id": "t3", "name": "Checklist"},
        ],
        "documents": [
            {"id": "d1", "categoryKey": "categories.armoplit", "title": "Armoplit mixing guide",
             "description": "Ratios for cold weather", "tagIds": ["t1", "t2"], "updatedAt": 500},
            {"id": "d2", "categoryKey": "categories.fixit", "title": "Fixit primer",
             "tagIds": ["t1"], "updatedAt": 300},
            {"id": "d3", "categoryKey": "categories.safety", "title": "Helmet policy",
             "tagIds": ["t3"], "updatedAt": 900},
            {"id": "d4", "categoryKey": "categories.hr", "title": "Vacation rules",
             "description": "Leave requests", "viewPermissions": ["foreman"]},
            {"id": "d5", "categoryKey": "Categories.Safety ", "title": "Scaffold checklist",
             "tagIds": ["t1", "t3"], "updatedAt": 700},
        ],
    }


@pytest.fixture
def store(seed_records) -> MemoryCatalogStore:
    """In-memory store seeded with ``seed_records``."""
    s = MemoryCatalogStore()
    s.seed(**seed_records)
    return s


@pytest.fixture
def many_documents_store() -> MemoryCatalogStore:
    """25 documents in one category visible to foreman (3 pages of 9)."""
    s = MemoryCatalogStore()
    s.seed(
        categories=[{"id": "c1", "nameKey": "docs", "viewPermissions": ["foreman"]}],
        documents=[
            {"id": f"d{i:02d}", "categoryKey": "docs", "title": f"Doc {i:02d}", "updatedAt": 1000 + i}
            for i in range(25)
        ],
    )
    return s


@pytest.fixture
def seed_file(tmp_path, seed_records):
    """seed_records written to a YAML file."""
    import yaml

    path = tmp_path / "seed.yaml"
    path.write_text(yaml.safe_dump(seed_records), encoding="utf-8")
    return path
