"""
Load the static OpenAPI description and render the documentation viewer.

The description is read once at startup from a YAML file. When it cannot be
read, the viewer is simply not mounted and the rest of the API keeps working.
"""

import logging
from pathlib import Path

import yaml
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.responses import HTMLResponse, JSONResponse

logger = logging.getLogger(__name__)

DOCS_TITLE = "AI Dev Team API Documentation"

# Swagger UI options: show the filter bar, keep the page compact.
SWAGGER_UI_PARAMETERS = {
    "filter": True,
    "docExpansion": "list",
}

CUSTOM_CSS = "<style>.swagger-ui .topbar { display: none }</style>"


def load_openapi_document(path: str | Path) -> dict | None:
    """
    Read an OpenAPI description from a YAML (or JSON) file.

    Returns None and logs a warning if the file is missing, unreadable or
    does not contain a mapping at the top level.
    """
    path = Path(path)
    try:
        document = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
        logger.warning("Could not load OpenAPI specification from %s: %s", path, exc)
        return None

    if not isinstance(document, dict):
        logger.warning(
            "Could not load OpenAPI specification from %s: expected a mapping, got %s",
            path,
            type(document).__name__,
        )
        return None

    logger.info("API documentation loaded from %s", path)
    return document


def openapi_url(docs_path: str) -> str:
    return f"{docs_path.rstrip('/')}/openapi.json"


def render_docs_page(docs_path: str) -> HTMLResponse:
    """Swagger UI page pointing at the description served under docs_path, top bar hidden."""
    page = get_swagger_ui_html(
        openapi_url=openapi_url(docs_path),
        title=DOCS_TITLE,
        swagger_ui_parameters=SWAGGER_UI_PARAMETERS,
    )
    html = page.body.decode("utf-8").replace("</head>", f"{CUSTOM_CSS}</head>", 1)
    return HTMLResponse(content=html)


def render_docs_document(document: dict) -> JSONResponse:
    return JSONResponse(content=document)
