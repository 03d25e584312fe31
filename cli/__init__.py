"""vsixsync command-line packages."""
