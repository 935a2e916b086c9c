"""Pipeline controller and command line interface."""
