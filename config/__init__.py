from .base import Config, DevelopmentConfig, ProductionConfig, TestingConfig, get_config_class

__all__ = [
    "Config",
    "DevelopmentConfig",
    "ProductionConfig",
    "TestingConfig",
    "get_config_class",
]
