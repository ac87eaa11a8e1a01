"""Shared helpers."""

from .response import error_response, is_success, success_response

__all__ = ["error_response", "is_success", "success_response"]
