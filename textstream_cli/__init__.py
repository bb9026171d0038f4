"""Text Stream CLI - submit, watch and manage text processing jobs"""

__version__ = "1.0.0"
