"""
DNS Module
Hosted zone and TLS certificate
"""

from .functions import create_zone_resources, create_certificate_resources

__all__ = ["create_zone_resources", "create_certificate_resources"]
