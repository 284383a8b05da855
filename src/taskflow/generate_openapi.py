"""
Utility script to generate and write the OpenAPI schema for the FastAPI app.

Serializes the app's OpenAPI schema to interfaces/openapi.json so that API
clients can be generated without running the server.

Usage:
    python -m taskflow.generate_openapi [output_dir]
"""
from __future__ import annotations

import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from .main import app, openapi_tags

logger = logging.getLogger(__name__)

# <repo_root>/interfaces, two levels above this package (src/taskflow)
DEFAULT_OUTPUT_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))), "interfaces"
)


def _ensure_tags(schema: Dict[str, Any]) -> None:
    """
    Make sure every tag declared on the app is in the schema's tag metadata,
    without overriding definitions that are already there.
    """
    existing_tags: List[Dict[str, Any]] = schema.get("tags", []) or []
    existing_names = {t.get("name") for t in existing_tags if isinstance(t, dict)}
    for tag in openapi_tags:
        if tag.get("name") not in existing_names:
            existing_tags.append(tag)
    if existing_tags:
        schema["tags"] = existing_tags


# PUBLIC_INTERFACE
def build_openapi_schema() -> Dict[str, Any]:
    """Return the app's OpenAPI schema with tag metadata filled in."""
    schema = app.openapi()
    _ensure_tags(schema)
    return schema


# PUBLIC_INTERFACE
def generate_openapi(output_dir: Optional[str] = None) -> str:
    """Write openapi.json into output_dir (interfaces/ by default) and return its path."""
    target_dir = output_dir or DEFAULT_OUTPUT_DIR
    os.makedirs(target_dir, exist_ok=True)
    out_path = os.path.join(target_dir, "openapi.json")

    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(build_openapi_schema(), f, indent=2, ensure_ascii=False)
    logger.info("wrote OpenAPI schema to %s", out_path)
    return out_path


def main(argv: Optional[List[str]] = None) -> None:
    args = sys.argv[1:] if argv is None else argv
    path = generate_openapi(args[0] if args else None)
    print(f"Wrote OpenAPI schema to: {path}")


if __name__ == "__main__":
    main()
