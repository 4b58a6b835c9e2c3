"""Providers without a backend yet"""

from ..models import HostingProvider
from .base import UnimplementedProvider
from .registry import register_provider


@register_provider
class AWSProvider(UnimplementedProvider):
    provider = HostingProvider.AWS
    label = "AWS"


@register_provider
class GCPProvider(UnimplementedProvider):
    provider = HostingProvider.GCP
    label = "GCP"


@register_provider
class AzureProvider(UnimplementedProvider):
    provider = HostingProvider.AZURE
    label = "Azure"


@register_provider
class LinodeProvider(UnimplementedProvider):
    provider = HostingProvider.LINODE
    label = "Linode"


@register_provider
class VultrProvider(UnimplementedProvider):
    provider = HostingProvider.VULTR
    label = "Vultr"
