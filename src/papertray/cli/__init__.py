"""papertray command-line interface."""
