"""ClawBuds command line interface."""
