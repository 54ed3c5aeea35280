"""VDDK Builder - build-trigger service for a cluster-internal registry.

This package accepts uploaded build contexts, runs a single image build at a
time with external tooling, pushes the result to the registry and answers
whether an image tag already exists.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
