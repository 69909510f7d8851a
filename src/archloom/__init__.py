"""archloom: consistency validation for enterprise-architecture models."""

__version__ = "0.4.0"
