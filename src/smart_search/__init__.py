"""smart-search: ripgrep across workspace roots, with Solr-backed result sessions."""

__version__ = "0.1.0"
