"""Jinja2 request-body templates and CSV/JSON test data loading.

See :class:`~apitestkit.template.service.TemplateService`.
"""

from apitestkit.template.service import TemplateService

__all__ = ["TemplateService"]
