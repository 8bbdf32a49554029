"""Human-readable renderings of finished reports."""
