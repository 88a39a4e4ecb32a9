"""
Adapters package for the Notice Service.

Contains the HTTP client wrapper for the WeCom API. Adapters encapsulate
base URLs, request shapes and transport error mapping to shared errors,
and stay side-effect free outside of explicit calls.
"""

from .wecom_client import WeComClient

__all__ = ["WeComClient"]
