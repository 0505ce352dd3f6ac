"""Claim intake: request model and submission validator."""

from .validator import ClaimRequest, ClaimValidator

__all__ = ["ClaimRequest", "ClaimValidator"]
