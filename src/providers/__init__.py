"""Hosting providers for Game Server Deploy"""

from .base import ProviderInterface, UnimplementedProvider
from .registry import ProviderRegistry, register_provider, provider_classes

# Importing the variants registers them
from .digitalocean import DigitalOceanProvider
from .self_hosted import SelfHostedProvider
from .unsupported import AWSProvider, GCPProvider, AzureProvider, LinodeProvider, VultrProvider

__all__ = [
    "ProviderInterface",
    "UnimplementedProvider",
    "ProviderRegistry",
    "register_provider",
    "provider_classes",
    "DigitalOceanProvider",
    "SelfHostedProvider",
    "AWSProvider",
    "GCPProvider",
    "AzureProvider",
    "LinodeProvider",
    "VultrProvider",
]
