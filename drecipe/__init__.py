"""drecipe - declarative Recipe/Job execution engine for Kubernetes."""

__version__ = "0.1.0"
