"""Insights — task health, estimation accuracy and reflection analytics."""
