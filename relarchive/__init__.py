"""Aligned byte buffers, archive validation contexts and a trait-object implementation registry."""

__version__ = "0.1.0"
__all__ = ["aligned", "validation", "dynamic", "dyn_validation"]