"""vpsdash - VPS monitoring dashboard with a safety-gated service controller."""

__version__ = "0.1.0"
