"""Posterior prediction and aggregation of regional population trends."""
