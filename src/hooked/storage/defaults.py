"""
Built-in reference data, so the app works fully offline from first start.
"""

from __future__ import annotations

import logging

from hooked.schema.records import Category
from hooked.storage.gateway import MutationGateway

logger = logging.getLogger(__name__)

DEFAULTS_VERSION_KEY = "defaultsVersion"
DEFAULTS_VERSION = 2  # Bump to add new defaults on existing installs

# Labels match the server's seeded categories
DEFAULT_CATEGORIES: tuple[Category, ...] = (
    Category(id="cat-pull", label="Pull", icon="shirt"),
    Category(id="cat-bonnet", label="Bonnet", icon="hard-hat"),
    Category(id="cat-echarpe", label="Écharpe", icon="wind"),
    Category(id="cat-couverture", label="Couverture", icon="bed-double"),
    Category(id="cat-gants", label="Gants", icon="hand"),
    Category(id="cat-sac", label="Sac", icon="shopping-bag"),
    Category(id="cat-amigurumi", label="Amigurumi", icon="baby"),
    Category(id="cat-chaussettes", label="Chaussettes", icon="footprints"),
    Category(id="cat-gilet", label="Gilet", icon="shirt"),
    Category(id="cat-autre", label="Autre", icon="shapes"),
)

DEFAULT_CATEGORY_LABELS: dict[str, str] = {c.id: c.label for c in DEFAULT_CATEGORIES}


async def seed_default_categories(gateway: MutationGateway, force: bool = False) -> int:
    """
    Add the built-in categories that are missing.

    Categories already present, by id or by label, are left alone so a
    server-issued copy is never shadowed by its built-in twin. Returns the
    number of categories added.
    """
    if not force and await gateway.get_metadata(DEFAULTS_VERSION_KEY) == DEFAULTS_VERSION:
        return 0

    existing = await gateway.categories()
    known_ids = {c.id for c in existing}
    known_labels = {c.natural_key for c in existing}

    added = 0
    for category in DEFAULT_CATEGORIES:
        if category.id in known_ids or category.natural_key in known_labels:
            continue
        await gateway.put_category(category.model_copy())
        added += 1

    await gateway.set_metadata(DEFAULTS_VERSION_KEY, DEFAULTS_VERSION)
    if added:
        logger.info("Added %d default categories", added)
    return added
