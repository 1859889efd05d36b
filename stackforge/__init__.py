"""stackforge -- full-stack project scaffolder with contract sync and an identity bridge."""

__version__ = "0.1.0"
