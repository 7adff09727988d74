"""strataplan - stratified recruitment planning for generalizability studies."""

__version__ = "0.3.0"
