"""
Utility modules for the delay cover service
"""
from .config_loader import ProductConfig, load_product_config

__all__ = [
    'ProductConfig',
    'load_product_config',
]
