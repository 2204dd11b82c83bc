"""Exceptions raised for analysis configurations the element kernels reject."""


class UnsupportedAnalysisError(RuntimeError):
    """The requested analysis configuration is not supported (e.g. follower forces)."""


class StressOutputOrderError(RuntimeError):
    """Stress output records were visited out of order or before being created."""
