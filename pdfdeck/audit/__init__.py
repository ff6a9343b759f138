"""Audit and QA tools."""

from pdfdeck.audit.html_generator import AuditHTMLGenerator

__all__ = ["AuditHTMLGenerator"]
