"""Request-body templates and tabular test data.

:class:`TemplateService` renders Jinja2 templates (typically JSON request
bodies) from a template directory and loads the data that feeds them:

* JSON data files whose top-level object becomes the template context
  (:meth:`TemplateService.render_with_data`).
* CSV files whose first non-blank row is the header
  (:meth:`TemplateService.load_csv_as_map`,
  :meth:`TemplateService.load_csv_as_list`).

Undefined template variables render as empty strings so that optional
fields can simply be left out of the context.  Compiled templates are
cached per path until :meth:`TemplateService.clear_cache` is called.

Example::

    templates = TemplateService("tests/templates")
    row = templates.load_csv_as_map("users.csv", row_index=1)
    body = templates.render("user-create.json.j2", row, active=True)
"""

from __future__ import annotations

import csv
import io
import json
import logging
import threading
from pathlib import Path
from typing import Any, Optional

from jinja2 import Environment, FileSystemLoader, Template, TemplateNotFound
from jinja2 import TemplateError as JinjaTemplateError

from apitestkit.exceptions import TemplateError

logger = logging.getLogger(__name__)


class TemplateService:
    """Render Jinja2 templates and load JSON/CSV fixtures from one directory.

    Args:
        template_dir: Root directory for templates.  Data and CSV paths
            that are not absolute are resolved against it too.
    """

    def __init__(self, template_dir: str | Path) -> None:
        self._template_dir = Path(template_dir)
        self._env = _create_jinja_env(self._template_dir)
        self._templates: dict[str, Template] = {}
        self._lock = threading.Lock()

    @property
    def template_dir(self) -> Path:
        return self._template_dir

    @property
    def cache_size(self) -> int:
        """Number of compiled templates currently cached."""
        with self._lock:
            return len(self._templates)

    # ------------------------------------------------------------------ #
    # Rendering
    # ------------------------------------------------------------------ #

    def render(
        self,
        template_path: str,
        context: Optional[dict[str, Any]] = None,
        **kwargs: Any,
    ) -> str:
        """Render *template_path* with *context* and keyword variables.

        Keyword arguments take precedence over keys in *context*.

        Raises:
            TemplateError: If the path is blank, the template is missing,
                or rendering fails.
        """
        if not template_path or not template_path.strip():
            raise TemplateError("Template path cannot be empty")

        template = self._get_template(template_path)
        variables = {**(context or {}), **kwargs}
        try:
            result = template.render(**variables)
        except JinjaTemplateError as exc:
            logger.error("Error rendering template %s: %s", template_path, exc)
            raise TemplateError(f"Failed to render template {template_path}: {exc}") from exc
        logger.debug("Rendered template %s", template_path)
        return result

    def render_with_data(
        self,
        template_path: str,
        data_file: str,
        context: Optional[dict[str, Any]] = None,
        **kwargs: Any,
    ) -> str:
        """Render *template_path* using a JSON object file as base context.

        Values from *context* and keyword arguments override keys loaded
        from *data_file*.

        Raises:
            TemplateError: If the data file is missing, is not valid JSON,
                or does not hold a JSON object.
        """
        if not data_file or not data_file.strip():
            raise TemplateError("Data file path cannot be empty")

        path = self._resolve(data_file)
        logger.debug("Loading template data from %s", path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise TemplateError(f"Data file not found: {path}") from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise TemplateError(f"Failed to load or parse data file {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise TemplateError(f"Data file {path} must contain a JSON object")

        merged = {**data, **(context or {})}
        return self.render(template_path, merged, **kwargs)

    def clear_cache(self, template_path: Optional[str] = None) -> None:
        """Forget one compiled template, or all of them."""
        with self._lock:
            if template_path is None:
                logger.debug("Clearing template cache")
                self._templates.clear()
            elif self._templates.pop(template_path, None) is not None:
                logger.debug("Removed template from cache: %s", template_path)
        if template_path is None and self._env.cache is not None:
            self._env.cache.clear()

    # ------------------------------------------------------------------ #
    # CSV fixtures
    # ------------------------------------------------------------------ #

    def load_csv_as_list(self, csv_path: str) -> list[dict[str, str]]:
        """Load every data row of a CSV file as ``{header: value}`` dicts.

        The first non-blank row is the header.  Blank rows are skipped,
        short rows are padded with ``""`` and extra cells are dropped.
        Cells are stripped of surrounding whitespace.

        Raises:
            TemplateError: If the path is blank or the file is missing or
                unreadable.
        """
        if not csv_path or not csv_path.strip():
            raise TemplateError("CSV file path cannot be empty")

        path = self._resolve(csv_path)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise TemplateError(f"CSV file not found: {path}") from exc
        except OSError as exc:
            raise TemplateError(f"Failed to read CSV file {path}: {exc}") from exc

        try:
            rows = _parse_csv(text, str(path))
        except csv.Error as exc:
            raise TemplateError(f"Failed to parse CSV file {path}: {exc}") from exc
        logger.debug("Loaded %d row(s) from CSV file %s", len(rows), path)
        return rows

    def load_csv_as_map(self, csv_path: str, row_index: int = 0) -> dict[str, str]:
        """Load a single data row (zero-based, header excluded) of a CSV file.

        Raises:
            TemplateError: If the file has no data rows or *row_index* is
                out of range.
        """
        rows = self.load_csv_as_list(csv_path)
        if not rows:
            raise TemplateError(f"CSV file has no data rows: {csv_path}")
        if row_index < 0 or row_index >= len(rows):
            raise TemplateError(
                f"Row index {row_index} is out of bounds. CSV has {len(rows)} data row(s)"
            )
        return rows[row_index]

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _get_template(self, template_path: str) -> Template:
        with self._lock:
            template = self._templates.get(template_path)
        if template is not None:
            return template
        try:
            template = self._env.get_template(template_path)
        except TemplateNotFound as exc:
            raise TemplateError(f"Template not found: {template_path}") from exc
        except JinjaTemplateError as exc:
            logger.error("Failed to load template %s: %s", template_path, exc)
            raise TemplateError(f"Template cannot be loaded: {template_path}: {exc}") from exc
        with self._lock:
            self._templates.setdefault(template_path, template)
        return template

    def _resolve(self, path: str) -> Path:
        candidate = Path(path).expanduser()
        if candidate.is_absolute():
            return candidate
        return self._template_dir / candidate


def _create_jinja_env(template_dir: Path) -> Environment:
    """Create the Jinja2 environment for request-body templates.

    Autoescape stays off because the output is JSON or XML request bodies,
    not HTML.
    """
    return Environment(
        loader=FileSystemLoader(str(template_dir)),
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


def _parse_csv(text: str, source: str) -> list[dict[str, str]]:
    headers: Optional[list[str]] = None
    rows: list[dict[str, str]] = []
    reader = csv.reader(io.StringIO(text))
    for raw in reader:
        values = [cell.strip() for cell in raw]
        if not any(values):
            continue
        if headers is None:
            headers = values
            continue
        if len(values) != len(headers):
            logger.warning(
                "%s line %d has %d columns but header has %d; padding/truncating",
                source,
                reader.line_num,
                len(values),
                len(headers),
            )
            values = (values + [""] * len(headers))[: len(headers)]
        rows.append(dict(zip(headers, values)))
    return rows
