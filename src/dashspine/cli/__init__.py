"""dashspine command line interface."""
