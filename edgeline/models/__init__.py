"""Probability, edge, weighting and recommendation models."""
