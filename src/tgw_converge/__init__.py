"""Poll-based convergence for EC2 transit gateway resources."""

__version__ = "0.1.0"
