"""BioMirror emotion inference and session analytics engine"""

__version__ = "0.1.0"
