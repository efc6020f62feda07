"""DAPC fitting, cross-validation and family relatedness tools for genotype data."""

__version__ = "0.1.0"
