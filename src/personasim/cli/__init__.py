"""personasim command-line interface."""
