"""
Infrastructure module exports.

Configuration and bootstrap for all service backends.
"""

from .config import InfraConfig, get_config, TTSBackendType
from .bootstrap import ServiceContext, bootstrap_services

__all__ = [
    "InfraConfig",
    "get_config",
    "TTSBackendType",
    "ServiceContext",
    "bootstrap_services",
]
