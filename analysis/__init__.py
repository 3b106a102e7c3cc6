"""Report scripts: town tables and the town population change map."""
