"""atomica — region-based atomicity verification front-end."""

__version__ = "0.1.0"

from atomica.pipeline import VerificationResult, verify

__all__ = ["VerificationResult", "verify", "__version__"]
