"""Built-in UI navigation patterns and material presets used to seed the store."""
from __future__ import annotations

import json
import logging
from typing import Any

from .store import Collection, KnowledgeEntry, KnowledgeStore

logger = logging.getLogger(__name__)

# (id, description, page, selector, action, category, notes)
UI_PATTERNS: list[tuple[str, str, str, str, str, str, str]] = [
    # Homepage
    ("homepage-open-project-card", "Click on a project card to open a scene from the homepage",
     "homepage", '.project-card, [data-testid="project-card"]', "click", "navigation",
     "Project cards appear in grid layout on homepage"),
    ("homepage-search-projects", "Search for projects by name using the search box",
     "homepage", 'input[type="search"], .search-input, [placeholder*="Search"]', "type", "search",
     "Usually in top navigation bar"),
    ("homepage-create-new", "Create a new project",
     "homepage", 'button:has-text("Create"), [data-testid="create-button"]', "click", "creation",
     "Opens new project creation dialog"),
    ("homepage-navigate-community", "Navigate to community projects section",
     "homepage", 'a[href*="/community"], nav a:has-text("Community")', "click", "navigation",
     "Browse community-created projects"),
    ("homepage-navigate-library", "Navigate to library section with materials and templates",
     "homepage", 'a[href*="/library"], nav a:has-text("Library")', "click", "navigation",
     "Access material library and templates"),
    ("homepage-project-by-name", "Find and click a specific project by its name",
     "homepage", '.project-card:has-text("{PROJECT_NAME}")', "click", "navigation",
     "Replace {PROJECT_NAME} with actual project title"),
    # Scene editor
    ("editor-select-object", "Select an object in the 3D scene by name",
     "scene-editor", "canvas", "click-object", "selection",
     "Requires visual observation to locate the object in the scene"),
    ("editor-object-panel", "Access object properties panel (right sidebar)",
     "scene-editor", '.properties-panel, .inspector-panel, [data-testid="properties"]', "view", "inspection",
     "Shows selected object properties"),
    ("editor-material-properties", "View or edit material properties of selected object",
     "scene-editor", '.material-section, [data-section="material"]', "edit", "materials",
     "Requires object to be selected first"),
    ("editor-scene-hierarchy", "View scene hierarchy/layers panel",
     "scene-editor", '.hierarchy-panel, .layers-panel, [data-testid="hierarchy"]', "view", "navigation",
     "Shows all objects in scene as tree structure"),
    ("editor-export-menu", "Open export menu to export scene or code",
     "scene-editor", 'button:has-text("Export"), [data-action="export"]', "click", "export",
     "Exports to GLB, GLTF, code, etc."),
    ("editor-animation-panel", "Access animation timeline and settings",
     "scene-editor", '.animation-panel, [data-testid="timeline"]', "view", "animation",
     "Create and edit animations"),
    # Library
    ("library-browse-materials", "Browse available materials in library",
     "library", '.material-grid, [data-category="materials"]', "browse", "materials",
     "Grid of material presets"),
    ("library-apply-material", "Click material preset to apply or view details",
     "library", '.material-card, [data-type="material"]', "click", "materials",
     "Shows material properties and preview"),
    ("library-search-materials", "Search for specific material type (glass, metal, etc.)",
     "library", 'input[placeholder*="Search materials"]', "type", "search",
     "Filter materials by keyword"),
    # Community
    ("community-browse-projects", "Browse community-created projects",
     "community", '.community-grid, [data-section="community"]', "browse", "exploration",
     "Grid of featured community projects"),
    ("community-open-project", "Open a community project to view or remix",
     "community", '.community-card, [data-type="community-project"]', "click", "navigation",
     "Opens project in editor or preview mode"),
    ("community-remix-project", "Remix/duplicate a community project to your workspace",
     "community", 'button:has-text("Remix"), [data-action="remix"]', "click", "creation",
     "Creates editable copy in your projects"),
    # Any page
    ("global-back-to-home", "Navigate back to homepage",
     "all", '.logo, a[href="/home"], [data-nav="home"]', "click", "navigation",
     "Usually clicking the logo in top-left"),
    ("global-user-menu", "Open user account menu",
     "all", '.user-menu, [data-testid="user-menu"]', "click", "account",
     "Access settings, logout, etc."),
    # Workflows
    ("workflow-copy-material-between-projects",
     "Extract material from one project and apply to another - requires opening source project, "
     "inspecting object, saving material properties, navigating to target project, and applying",
     "all", "multi-step-workflow", "workflow", "materials",
     "Complex workflow requiring multiple page navigations and state management"),
    ("workflow-inspect-community-animation",
     "Open community project to study animation settings - navigate to community, find project, "
     "open it, select animated object, view animation timeline",
     "all", "multi-step-workflow", "workflow", "animation",
     "Useful for learning from community examples"),
]

MATERIAL_PRESETS: list[dict[str, Any]] = [
    {
        "id": "glass-blue-transparent",
        "name": "Glossy Blue Glass",
        "description": "Transparent blue glass material with high glossiness and refraction, "
                       "perfect for modern UI elements and buttons",
        "source": "manual-seed",
        "properties": {
            "type": "glass", "color": "#4A90E2", "transparency": 0.7, "roughness": 0.1,
            "metalness": 0, "ior": 1.5, "transmission": 0.9,
        },
    },
    {
        "id": "metal-chrome",
        "name": "Chrome Metal",
        "description": "Highly reflective chrome metal material, great for futuristic and robotic elements",
        "source": "manual-seed",
        "properties": {
            "type": "metal", "color": "#CCCCCC", "transparency": 0, "roughness": 0.05,
            "metalness": 1.0, "clearcoat": 1.0,
        },
    },
    {
        "id": "glass-frosted",
        "name": "Frosted Glass",
        "description": "Semi-transparent frosted glass with subtle blur effect, ideal for glassmorphism UI designs",
        "source": "manual-seed",
        "properties": {
            "type": "glass", "color": "#FFFFFF", "transparency": 0.4, "roughness": 0.3,
            "metalness": 0, "ior": 1.45, "transmission": 0.7,
        },
    },
]


def ui_pattern_entries() -> list[KnowledgeEntry]:
    return [
        KnowledgeEntry(
            id=pid,
            text=description,
            tags={"page": page, "selector": selector, "action": action, "category": category, "notes": notes},
        )
        for pid, description, page, selector, action, category, notes in UI_PATTERNS
    ]


def material_entry(preset: dict[str, Any]) -> KnowledgeEntry:
    """Flatten a material preset into a store entry; full properties ride along as JSON."""
    props = preset.get("properties", {})
    return KnowledgeEntry(
        id=preset["id"],
        text=f"{preset['name']}: {preset.get('description', '')}",
        tags={
            "name": preset["name"],
            "type": str(props.get("type", "unknown")),
            "color": str(props.get("color", "")),
            "source": preset.get("source", "unknown"),
            "properties": json.dumps(props, sort_keys=True),
        },
    )


async def seed_knowledge_store(store: KnowledgeStore, *, clear: bool = False) -> dict[str, Any]:
    """Load the built-in patterns and presets into ``store``.

    An already-populated store is left untouched unless ``clear`` is set.
    """
    if clear:
        await store.clear()
        logger.info("Cleared knowledge store before seeding")
    elif store.stats()["total"] > 0:
        logger.info("Knowledge store already populated; skipping seed (use clear=True to reseed)")
        return {"seeded": False, "ui_patterns": 0, "materials": 0, "stats": store.stats()}

    for entry in ui_pattern_entries():
        await store.add(Collection.UI_PATTERNS, entry)
    for preset in MATERIAL_PRESETS:
        await store.add(Collection.MATERIALS, material_entry(preset))

    logger.info("Seeded %d UI patterns and %d material presets", len(UI_PATTERNS), len(MATERIAL_PRESETS))
    return {
        "seeded": True,
        "ui_patterns": len(UI_PATTERNS),
        "materials": len(MATERIAL_PRESETS),
        "stats": store.stats(),
    }
