"""Payment records attached to orders."""
