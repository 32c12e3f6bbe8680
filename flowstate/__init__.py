"""flowstate -- scaffold projects from pluggable stack modules."""

__version__ = "0.1.0"
